import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.meyden.models import PlatformSetting, Profile, User
from app.meyden.modules.ai_readiness.models import Question, Survey
from app.meyden.modules.community.models import Category, Comment, Post
from app.meyden.modules.vendors.models import Review, Vendor, VendorService
from app.meyden.utils import utcnow
from scripts._db_utils import script_session


CATEGORIES = (
    ("Government AI", "government-ai", "AI implementations in government sectors", "#1d4ed8"),
    ("Data Governance", "data-governance", "Data management and governance", "#047857"),
    ("AI Readiness", "ai-readiness", "AI readiness assessments and strategies", "#7c3aed"),
    ("Case Studies", "case-studies", "Real-world AI implementation case studies", "#b45309"),
    ("Technology Trends", "technology-trends", "Latest AI and technology trends", "#be123c"),
    ("Best Practices", "best-practices", "AI implementation best practices", "#0f766e"),
)

SETTINGS = (
    ("site_name", "Meyden", "string", "Display name of the platform", True),
    ("site_tagline", "AI readiness for the region", "string", "Subtitle shown under the site name", True),
    ("default_language", "en", "string", "Language used when a profile has none", True),
    ("featured_survey_title", "AI Readiness Assessment", "string", "Survey promoted on the dashboard", True),
    ("support_email", "support@meyden.com", "string", "Contact address shown to users", True),
)

# (dimension, text, options best first)
READINESS_QUESTIONS = (
    (
        "Data",
        "How would you rate your organization's current data collection and storage practices?",
        [
            "We have comprehensive data collection with proper storage and backup systems",
            "We have basic data collection with adequate storage solutions",
            "We have limited data collection and basic storage",
            "We lack structured data collection and storage systems",
        ],
    ),
    (
        "Data",
        "What is your organization's approach to data quality and governance?",
        [
            "We have established data quality processes and governance policies",
            "We have basic data quality checks and some governance practices",
            "We have minimal data quality processes",
            "We have not addressed data quality and governance",
        ],
    ),
    (
        "Governance",
        "Does your organization have clear AI governance policies and procedures?",
        [
            "Yes, we have comprehensive AI governance frameworks",
            "We have basic AI governance policies in place",
            "We are developing AI governance policies",
            "No, we have not established AI governance",
        ],
    ),
    (
        "Governance",
        "How does your organization ensure ethical AI practices?",
        [
            "We have robust ethical AI guidelines and oversight committees",
            "We have basic ethical AI guidelines",
            "We are developing ethical AI practices",
            "We have not addressed ethical AI considerations",
        ],
    ),
    (
        "Data",
        "How does your organization handle data security and privacy compliance?",
        [
            "We have comprehensive data security measures with full compliance",
            "We have basic security measures and partial compliance",
            "We have minimal security measures in place",
            "We have not addressed data security and privacy",
        ],
    ),
    (
        "Governance",
        "How would you describe your organization's culture towards AI adoption?",
        [
            "We have a strong AI-first culture with active experimentation",
            "We have a positive attitude towards AI with selective adoption",
            "We are cautious about AI adoption but open to learning",
            "We have resistance to AI adoption across the organization",
        ],
    ),
    (
        "Governance",
        "What is your organization's approach to AI skills development and training?",
        [
            "We have comprehensive AI training programs for all employees",
            "We have AI training programs for key personnel",
            "We have limited AI training and development opportunities",
            "We have not established AI training programs",
        ],
    ),
    (
        "Governance",
        "How does your organization approach change management for AI initiatives?",
        [
            "We have structured change management processes for all AI projects",
            "We have basic change management approaches",
            "We have limited change management practices",
            "We have not established change management for AI",
        ],
    ),
    (
        "Adoption",
        "What is your organization's strategy for AI innovation and experimentation?",
        [
            "We have dedicated AI innovation labs and regular experimentation",
            "We have occasional AI pilot projects and experimentation",
            "We have limited AI experimentation activities",
            "We have not established AI innovation programs",
        ],
    ),
    (
        "Adoption",
        "How does your organization measure and track AI adoption success?",
        [
            "We have comprehensive AI success metrics and KPIs",
            "We have basic AI success measurement processes",
            "We have limited AI success tracking",
            "We have not established AI success measurement",
        ],
    ),
    (
        "Adoption",
        "What is your organization's approach to AI vendor selection and management?",
        [
            "We have structured AI vendor evaluation and management processes",
            "We have basic AI vendor selection criteria",
            "We have limited AI vendor management practices",
            "We have not established AI vendor management",
        ],
    ),
)


def _ensure_user(s, email: str, password: str, *, first: str, last: str, role: str) -> User:
    u = s.query(User).filter(User.email == email).one_or_none()
    if not u:
        u = User(
            email=email,
            password_hash=generate_password_hash(password),
            first_name=first,
            last_name=last,
            role=role,
            status="ACTIVE",
            email_verified=True,
        )
        s.add(u)
        s.flush()
    return u


def _seed_demo(s) -> None:
    """Sample vendors, posts and reviews for local development."""
    if s.query(Vendor).filter(Vendor.company_name == "TechVision Solutions").one_or_none():
        return
    vendor_user = _ensure_user(s, "vendor@meyden.com", "vendor123", first="Ahmed", last="Al-Rashid", role="VENDOR")
    regular = _ensure_user(s, "user@meyden.com", "user123", first="Layla", last="Ibrahim", role="USER")
    if vendor_user.profile is None:
        s.add(
            Profile(
                user_id=vendor_user.id,
                bio="Experienced AI consultant with 12+ years in digital transformation",
                job_title="CEO & Founder",
                company="TechVision Solutions",
                industry="Technology Consulting",
                experience_years=12,
                country="UAE",
                city="Dubai",
                linkedin="https://linkedin.com/in/ahmedalrashid",
            )
        )
    if regular.profile is None:
        s.add(
            Profile(
                user_id=regular.id,
                bio="Educational technology specialist interested in AI readiness",
                job_title="Educational Technology Specialist",
                company="Dubai Education Council",
                industry="Education",
                experience_years=5,
                country="UAE",
                city="Dubai",
            )
        )

    techvision = Vendor(
        user_id=vendor_user.id,
        company_name="TechVision Solutions",
        business_name="TechVision Solutions LLC",
        description=(
            "Leading AI and digital transformation consultancy helping enterprises achieve operational "
            "excellence through cutting-edge technology solutions."
        ),
        email="contact@techvision.ae",
        phone="+971-4-123-4567",
        website="https://www.techvision.ae",
        address="Dubai Internet City",
        city="Dubai",
        state="Dubai",
        country="UAE",
        business_type="Technology Consulting",
        year_established=2012,
        employee_count="51-200",
        status="ACTIVE",
        is_verified=True,
        average_rating=5.0,
        total_reviews=1,
    )
    emirates = Vendor(
        company_name="Emirates Data Systems",
        business_name="Emirates Data Systems LLC",
        description=(
            "Specialized data engineering and analytics firm with deep expertise in Middle East market "
            "requirements and compliance."
        ),
        email="info@emiratesdata.ae",
        phone="+971-2-987-6543",
        website="https://www.emiratesdata.ae",
        address="Al Maryah Island",
        city="Abu Dhabi",
        state="Abu Dhabi",
        country="UAE",
        business_type="Data Management",
        year_established=2016,
        employee_count="11-50",
        status="ACTIVE",
        is_verified=True,
        average_rating=5.0,
        total_reviews=1,
    )
    techvision.services = [
        VendorService(
            name="AI Strategy Consulting",
            description="Comprehensive AI strategy development and roadmap creation",
            category="CONSULTING",
            subcategory="AI Strategy",
            base_price=150,
            price_unit="per hour",
            is_featured=True,
        ),
        VendorService(
            name="Digital Transformation",
            description="End-to-end digital transformation services",
            category="SOFTWARE_DEVELOPMENT",
            subcategory="Digital Transformation",
            base_price=200,
            price_unit="per hour",
        ),
    ]
    emirates.services = [
        VendorService(
            name="Data Engineering",
            description="Custom data pipeline development and optimization",
            category="DATA_ANALYTICS",
            subcategory="Data Engineering",
            base_price=180,
            price_unit="per hour",
            is_featured=True,
        ),
    ]
    s.add_all([techvision, emirates])
    s.flush()

    s.add_all(
        [
            Review(
                vendor_id=techvision.id,
                user_id=regular.id,
                title="Excellent AI Strategy Service",
                content="TechVision helped us develop a comprehensive AI strategy. Very professional and knowledgeable team.",
                overall_rating=5,
                quality_rating=5,
                communication_rating=5,
                timeliness_rating=4,
                value_rating=5,
                status="APPROVED",
                is_verified=True,
            ),
            Review(
                vendor_id=emirates.id,
                user_id=regular.id,
                title="Outstanding Data Engineering",
                content="The data engineering team delivered beyond expectations. Great technical expertise and communication.",
                overall_rating=5,
                quality_rating=5,
                communication_rating=4,
                timeliness_rating=5,
                value_rating=5,
                status="APPROVED",
                is_verified=True,
            ),
        ]
    )

    now = utcnow()
    cats = {c.slug: c for c in s.query(Category).all()}
    post1 = Post(
        user_id=vendor_user.id,
        category_id=cats["government-ai"].id if "government-ai" in cats else None,
        title="Best practices for AI implementation in government sectors",
        content=(
            "I've been working on AI projects for government clients and wanted to share some insights about "
            "the unique challenges and opportunities in this space. The key is to start with small, manageable "
            "projects that demonstrate clear value..."
        ),
        slug="best-practices-ai-government",
        type="ARTICLE",
        status="PUBLISHED",
        tags="government,AI,best-practices",
        view_count=45,
        like_count=12,
        comment_count=1,
        published_at=now,
    )
    post2 = Post(
        user_id=regular.id,
        category_id=cats["ai-readiness"].id if "ai-readiness" in cats else None,
        title="AI Readiness Assessment - What should we focus on first?",
        content=(
            "We're planning to conduct an AI readiness assessment for our organization. What dimensions should "
            "we prioritize and what tools do you recommend for getting started?"
        ),
        slug="ai-readiness-what-to-focus",
        type="QUESTION",
        status="PUBLISHED",
        tags="assessment,readiness,planning",
        view_count=23,
        like_count=8,
        comment_count=1,
        published_at=now,
    )
    s.add_all([post1, post2])
    s.flush()
    s.add_all(
        [
            Comment(
                post_id=post1.id,
                user_id=regular.id,
                content="Great insights! Could you elaborate on the compliance considerations for government AI projects?",
            ),
            Comment(
                post_id=post2.id,
                user_id=vendor_user.id,
                content=(
                    "I recommend starting with data governance and then moving to pilot projects. "
                    "The AI readiness survey on this platform is a great starting point!"
                ),
            ),
        ]
    )


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed categories/settings/readiness survey/admin user in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@meyden.com").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "admin123"
    seed_demo = (os.environ.get("SEED_DEMO_DATA") or "").strip() == "1"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///meyden.db").strip()

    # Use direct engine/session so this can run in release without importing app.wsgi (avoids recursion).
    with script_session(db_url) as s:
        def ensure_category(name: str, slug: str, description: str, color: str) -> Category:
            c = s.query(Category).filter(Category.slug == slug).one_or_none()
            if not c:
                c = Category(name=name, slug=slug, description=description, color=color)
                s.add(c)
            return c

        for row in CATEGORIES:
            ensure_category(*row)

        def ensure_setting(key: str, value: str, type_: str, description: str, is_public: bool) -> PlatformSetting:
            st = s.query(PlatformSetting).filter(PlatformSetting.key == key).one_or_none()
            if not st:
                st = PlatformSetting(key=key, value=value, type=type_, description=description, is_public=is_public)
                s.add(st)
            return st

        for row in SETTINGS:
            ensure_setting(*row)

        admin = _ensure_user(s, admin_email, admin_password, first="Admin", last="User", role="SUPER_ADMIN")

        survey = s.query(Survey).filter(Survey.title == "AI Readiness Assessment").one_or_none()
        if not survey:
            survey = Survey(
                title="AI Readiness Assessment",
                description="Comprehensive assessment of your organization's readiness for AI adoption",
                category="General",
                status="ACTIVE",
                is_public=True,
                published_at=utcnow(),
                created_by_user_id=admin.id,
            )
            for i, (dimension, text, options) in enumerate(READINESS_QUESTIONS, start=1):
                survey.questions.append(
                    Question(
                        text=text,
                        type="SINGLE_CHOICE",
                        options=options,
                        dimension=dimension,
                        order=i,
                        max_score=1.0,
                        is_required=True,
                    )
                )
            s.add(survey)
        s.flush()

        if seed_demo:
            _seed_demo(s)

    print("Seed complete.")


def main() -> None:
    seed_only()


if __name__ == "__main__":
    main()
