from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import func

from app.meyden.audit import record_event
from app.meyden.constants import CONTENT_PUBLISHED
from app.meyden.modules.community.models import Category, Comment, Post
from app.meyden.modules.users.service import serialize_author
from app.meyden.utils import iso, slugify, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.meyden.models import User


def serialize_category(cat: Category | None) -> dict[str, Any] | None:
    if cat is None:
        return None
    return {
        "id": cat.id,
        "name": cat.name,
        "slug": cat.slug,
        "description": cat.description,
        "color": cat.color,
    }


def serialize_comment(c: Comment, replies: list[Comment] | None = None) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": c.id,
        "postId": c.post_id,
        "parentId": c.parent_id,
        "content": c.content,
        "status": c.status,
        "likeCount": c.like_count,
        "createdAt": iso(c.created_at),
        "author": serialize_author(c.user),
    }
    if replies is not None:
        data["replies"] = [serialize_comment(r) for r in replies]
    return data


def serialize_post(post: Post, **extra: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": post.id,
        "title": post.title,
        "content": post.content,
        "excerpt": post.excerpt,
        "slug": post.slug,
        "type": post.type,
        "status": post.status,
        "tags": post.tag_list,
        "viewCount": post.view_count,
        "likeCount": post.like_count,
        "commentCount": post.comment_count,
        "publishedAt": iso(post.published_at),
        "createdAt": iso(post.created_at),
        "author": serialize_author(post.user),
        "category": serialize_category(post.category),
    }
    data.update(extra)
    return data


def published_comments(s: "Session", post_id: int):
    return s.query(Comment).filter(Comment.post_id == post_id, Comment.status == CONTENT_PUBLISHED)


def published_comment_count(s: "Session", post_id: int) -> int:
    return published_comments(s, post_id).count()


def unique_slug(s: "Session", title: str) -> str:
    base = slugify(title)
    slug = base
    n = 2
    while s.query(Post.id).filter(Post.slug == slug).first() is not None:
        slug = f"{base}-{n}"
        n += 1
    return slug


def make_excerpt(content: str, length: int = 200) -> str:
    text = " ".join(content.split())
    return text if len(text) <= length else text[: length - 3].rstrip() + "..."


def normalize_tags(tags: list[str] | None) -> str | None:
    if not tags:
        return None
    cleaned = []
    for t in tags:
        t = t.strip().replace(",", "")
        if t and t not in cleaned:
            cleaned.append(t)
    return ",".join(cleaned) or None


def create_post(s: "Session", payload: dict[str, Any], user: "User") -> Post:
    now = utcnow()
    post = Post(
        user_id=user.id,
        category_id=payload.get("category_id"),
        title=payload["title"],
        content=payload["content"],
        excerpt=payload.get("excerpt") or make_excerpt(payload["content"]),
        slug=unique_slug(s, payload["title"]),
        type=payload.get("type") or "ARTICLE",
        status=CONTENT_PUBLISHED,
        tags=normalize_tags(payload.get("tags")),
        published_at=now,
    )
    s.add(post)
    s.flush()
    record_event(
        s,
        actor=user,
        action="post.create",
        entity_type="Post",
        entity_id=str(post.id),
        metadata={"type": post.type, "categoryId": post.category_id},
    )
    return post


def create_comment(s: "Session", post: Post, content: str, user: "User", parent: Comment | None = None) -> Comment:
    comment = Comment(
        post_id=post.id,
        user_id=user.id,
        parent_id=parent.id if parent else None,
        content=content,
        status=CONTENT_PUBLISHED,
    )
    s.add(comment)
    post.comment_count = (post.comment_count or 0) + 1
    s.flush()
    record_event(
        s,
        actor=user,
        action="comment.create",
        entity_type="Comment",
        entity_id=str(comment.id),
        metadata={"postId": post.id, "parentId": comment.parent_id},
    )
    return comment


def sync_comment_count(s: "Session", post: Post) -> None:
    post.comment_count = published_comment_count(s, post.id)


def posts_with_counts(s: "Session", posts: list[Post]) -> dict[int, int]:
    """Published comment counts for a page of posts in one query."""
    if not posts:
        return {}
    rows = (
        s.query(Comment.post_id, func.count(Comment.id))
        .filter(Comment.post_id.in_([p.id for p in posts]), Comment.status == CONTENT_PUBLISHED)
        .group_by(Comment.post_id)
        .all()
    )
    return {post_id: int(n) for post_id, n in rows}
