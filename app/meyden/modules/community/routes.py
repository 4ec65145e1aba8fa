from __future__ import annotations

from typing import Any, Literal

from flask import Blueprint, jsonify, request
from pydantic import Field, field_validator, model_validator

from app.meyden.constants import CONTENT_PUBLISHED, POST_TYPES
from app.meyden.db import db_session
from app.meyden.errors import Forbidden, NotFound, ValidationFailed
from app.meyden.modules.community.models import Category, CategoryFollow, Comment, Post, PostFollow
from app.meyden.modules.community.service import (
    create_comment,
    create_post,
    posts_with_counts,
    published_comments,
    serialize_category,
    serialize_comment,
    serialize_post,
)
from app.meyden.rbac import current_user, is_admin, require_active_user, require_auth
from app.meyden.schemas import CamelModel, parse_body
from app.meyden.utils import get_pagination_params, iso, pagination_meta, sanitize_input

bp = Blueprint("community", __name__)

# Ten tags of this size still fit the 500 character tags column.
MAX_TAG_LENGTH = 40


class PostCreate(CamelModel):
    title: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=10, max_length=20000)
    excerpt: str | None = Field(default=None, max_length=500)
    type: Literal["ARTICLE", "QUESTION", "DISCUSSION", "ANNOUNCEMENT", "SHOWCASE"] = "ARTICLE"
    category_id: int | None = None
    tags: list[str] | None = Field(default=None, max_length=10)

    # Runs before the length rules so markup-only text counts as empty.
    @field_validator("title", "content", "excerpt", mode="before")
    @classmethod
    def strip_markup(cls, v: Any) -> Any:
        return sanitize_input(v)

    @field_validator("tags")
    @classmethod
    def short_tags(cls, v: list[str] | None) -> list[str] | None:
        if v and any(len(t.strip()) > MAX_TAG_LENGTH for t in v):
            raise ValueError(f"Tags must be at most {MAX_TAG_LENGTH} characters")
        return v


class CommentCreate(CamelModel):
    content: str = Field(min_length=1, max_length=5000)
    post_id: int | None = None
    parent_id: int | None = None

    @field_validator("content", mode="before")
    @classmethod
    def strip_markup(cls, v: Any) -> Any:
        return sanitize_input(v)

    @model_validator(mode="after")
    def needs_target(self):
        if self.post_id is None and self.parent_id is None:
            raise ValueError("postId or parentId is required")
        return self


def _published_post(post_id: int) -> Post:
    s = db_session()
    post = s.get(Post, post_id)
    if post is None:
        raise NotFound("Post not found", code="POST_NOT_FOUND")
    if post.status != CONTENT_PUBLISHED:
        raise NotFound("Post is not available", code="POST_UNAVAILABLE")
    return post


def _active_category(category_id: int) -> Category:
    s = db_session()
    cat = s.get(Category, category_id)
    if cat is None or not cat.is_active:
        raise NotFound("Category not found", code="CATEGORY_NOT_FOUND")
    return cat


# ---------- Posts ----------
@bp.get("/posts")
def list_posts():
    page, limit, offset = get_pagination_params()
    post_type = (request.args.get("type") or "").strip().upper()
    category = (request.args.get("category") or "").strip()
    if post_type and post_type not in POST_TYPES:
        raise ValidationFailed(f"Invalid type. Must be one of: {', '.join(POST_TYPES)}")

    s = db_session()
    q = s.query(Post).filter(Post.status == CONTENT_PUBLISHED)
    if post_type:
        q = q.filter(Post.type == post_type)
    if category:
        q = q.join(Category, Post.category_id == Category.id).filter(Category.name.ilike(f"%{category}%"))
    total = q.count()
    posts = q.order_by(Post.published_at.desc(), Post.id.desc()).offset(offset).limit(limit).all()

    counts = posts_with_counts(s, posts)
    data = []
    for p in posts:
        latest = published_comments(s, p.id).order_by(Comment.created_at.desc(), Comment.id.desc()).limit(3).all()
        data.append(
            serialize_post(
                p,
                recentComments=[serialize_comment(c) for c in latest],
                publishedCommentCount=counts.get(p.id, 0),
            )
        )
    return jsonify({"posts": data, "pagination": pagination_meta(page, limit, total)})


@bp.get("/posts/<int:post_id>")
def get_post(post_id: int):
    post = _published_post(post_id)
    s = db_session()
    comments = published_comments(s, post.id).order_by(Comment.created_at.asc(), Comment.id.asc()).all()
    replies_by_parent: dict[int, list[Comment]] = {}
    for c in comments:
        if c.parent_id is not None:
            replies_by_parent.setdefault(c.parent_id, []).append(c)
    top_level = [c for c in comments if c.parent_id is None]

    post.view_count = (post.view_count or 0) + 1
    s.commit()
    return jsonify(
        {
            "post": serialize_post(
                post,
                comments=[serialize_comment(c, replies_by_parent.get(c.id, [])) for c in top_level],
            )
        }
    )


@bp.post("/posts")
@require_active_user
def post_post():
    body = parse_body(PostCreate)
    user = current_user()
    if body.type == "ANNOUNCEMENT" and not is_admin(user):
        raise Forbidden("Only admins can publish announcements", code="INSUFFICIENT_PERMISSIONS")
    if body.category_id is not None:
        _active_category(body.category_id)
    s = db_session()
    post = create_post(s, body.model_dump(), user)
    s.commit()
    return jsonify({"message": "Post created successfully", "post": serialize_post(post)}), 201


# ---------- Comments ----------
@bp.post("/comments")
@require_active_user
def post_comment():
    body = parse_body(CommentCreate)
    s = db_session()
    parent: Comment | None = None
    post_id = body.post_id
    if body.parent_id is not None:
        parent = s.get(Comment, body.parent_id)
        if parent is None or parent.status != CONTENT_PUBLISHED:
            raise NotFound("Parent comment not found", code="COMMENT_NOT_FOUND")
        if post_id is not None and post_id != parent.post_id:
            raise ValidationFailed("Parent comment belongs to a different post", code="INVALID_PARENT")
        if parent.parent_id is not None:
            raise ValidationFailed("Replies can only be made to top-level comments", code="INVALID_PARENT")
        post_id = parent.post_id
    post = _published_post(int(post_id))  # type: ignore[arg-type]
    comment = create_comment(s, post, body.content, current_user(), parent=parent)
    s.commit()
    return jsonify({"message": "Comment created successfully", "comment": serialize_comment(comment)}), 201


# ---------- Categories ----------
@bp.get("/categories")
def list_categories():
    s = db_session()
    cats = s.query(Category).filter(Category.is_active.is_(True)).order_by(Category.name.asc()).all()
    return jsonify({"categories": [serialize_category(c) for c in cats]})


@bp.post("/categories/<int:category_id>/follow")
@require_active_user
def follow_category(category_id: int):
    cat = _active_category(category_id)
    s = db_session()
    user = current_user()
    existing = (
        s.query(CategoryFollow)
        .filter(CategoryFollow.user_id == user.id, CategoryFollow.category_id == cat.id)
        .one_or_none()
    )
    if existing is not None:
        return jsonify({"message": "Already following category", "following": True})
    s.add(CategoryFollow(user_id=user.id, category_id=cat.id))
    s.commit()
    return jsonify({"message": "Category followed", "following": True}), 201


@bp.delete("/categories/<int:category_id>/follow")
@require_auth
def unfollow_category(category_id: int):
    s = db_session()
    user = current_user()
    s.query(CategoryFollow).filter(
        CategoryFollow.user_id == user.id, CategoryFollow.category_id == category_id
    ).delete()
    s.commit()
    return jsonify({"message": "Category unfollowed", "following": False})


@bp.post("/posts/<int:post_id>/follow")
@require_active_user
def follow_post(post_id: int):
    post = _published_post(post_id)
    s = db_session()
    user = current_user()
    existing = s.query(PostFollow).filter(PostFollow.user_id == user.id, PostFollow.post_id == post.id).one_or_none()
    if existing is not None:
        return jsonify({"message": "Already following post", "following": True})
    s.add(PostFollow(user_id=user.id, post_id=post.id))
    s.commit()
    return jsonify({"message": "Post followed", "following": True}), 201


@bp.delete("/posts/<int:post_id>/follow")
@require_auth
def unfollow_post(post_id: int):
    s = db_session()
    user = current_user()
    s.query(PostFollow).filter(PostFollow.user_id == user.id, PostFollow.post_id == post_id).delete()
    s.commit()
    return jsonify({"message": "Post unfollowed", "following": False})


@bp.get("/following")
@require_auth
def following():
    s = db_session()
    user = current_user()
    cat_follows = (
        s.query(CategoryFollow)
        .filter(CategoryFollow.user_id == user.id)
        .order_by(CategoryFollow.created_at.desc(), CategoryFollow.id.desc())
        .all()
    )
    post_follows = (
        s.query(PostFollow)
        .filter(PostFollow.user_id == user.id)
        .order_by(PostFollow.created_at.desc(), PostFollow.id.desc())
        .all()
    )
    return jsonify(
        {
            "categories": [
                dict(serialize_category(f.category) or {}, followedAt=iso(f.created_at)) for f in cat_follows
            ],
            "posts": [
                {
                    "id": f.post.id,
                    "title": f.post.title,
                    "slug": f.post.slug,
                    "status": f.post.status,
                    "followedAt": iso(f.created_at),
                }
                for f in post_follows
            ],
        }
    )
