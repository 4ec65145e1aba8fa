from sqlalchemy import create_engine

from app.meyden.models import Base, PlatformSetting, User
from app.meyden.modules.ai_readiness.models import Question, Survey
from app.meyden.modules.community.models import Category, Post
from app.meyden.modules.vendors.models import Review, Vendor
from scripts._db_utils import script_session
from scripts.init_db import CATEGORIES, READINESS_QUESTIONS, SETTINGS, seed_only


def _db(tmp_path):
    url = f"sqlite:///{tmp_path/'seed.db'}"
    engine = create_engine(url)
    Base.metadata.create_all(bind=engine)
    engine.dispose()
    return url


def test_seed_is_idempotent(tmp_path, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAIL", "Boss@Example.com")
    monkeypatch.setenv("ADMIN_PASSWORD", "S3cret!pass")
    monkeypatch.delenv("SEED_DEMO_DATA", raising=False)
    url = _db(tmp_path)

    seed_only(database_url=url)
    seed_only(database_url=url)

    with script_session(url) as s:
        admin = s.query(User).one()
        assert admin.email == "boss@example.com"
        assert admin.role == "SUPER_ADMIN"
        assert s.query(Category).count() == len(CATEGORIES)
        assert s.query(PlatformSetting).count() == len(SETTINGS)
        survey = s.query(Survey).one()
        assert survey.status == "ACTIVE"
        assert s.query(Question).count() == len(READINESS_QUESTIONS)
        assert s.query(Vendor).count() == 0


def test_demo_data_is_opt_in(tmp_path, monkeypatch):
    monkeypatch.setenv("SEED_DEMO_DATA", "1")
    url = _db(tmp_path)

    seed_only(database_url=url)
    seed_only(database_url=url)

    with script_session(url) as s:
        assert s.query(Vendor).filter(Vendor.status == "ACTIVE").count() == 2
        assert s.query(Review).filter(Review.status == "APPROVED").count() == 2
        assert s.query(Post).count() == 2
        for v in s.query(Vendor).all():
            assert v.total_reviews == 1
