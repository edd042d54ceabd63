"""
Visibility gate — moderation and privacy restrictions shared by every feed.

The pipeline applies the gate to the builder's statement after the feed
kind has done its work, so no builder can opt out of it. The per-kind
`VisibilityPolicy` only relaxes the checks the kind is entitled to relax
(e.g. bookmarks may show private posts the user saved).

Order of restrictions:
  1. post type ∈ supported types (deleted posts never pass)
  2. private posts, unless allowed
  3. squad posts, unless allowed
  4. squads below their public threshold
  5. source-type allow-list
  6. posts the requester hid
  7. banned / not-on-feed posts
"""
from dataclasses import dataclass
from typing import Sequence

from sqlalchemy import Select, exists, false, func, or_, true
from sqlalchemy.sql.elements import ColumnElement

from feedcomposer.engine.kinds import Requester
from feedcomposer.models import Post, Source, SourceType, UserPost


@dataclass(frozen=True)
class VisibilityPolicy:
    remove_hidden_posts: bool = True
    remove_banned_posts: bool = True
    allow_private_posts: bool = True
    allow_squad_posts: bool = True
    remove_non_public_threshold_squads: bool = True


def anti_abuse_clause(requester: Requester) -> ColumnElement[bool]:
    """
    Posts flagged by the anti-abuse pipeline stay visible to their author
    and to the user who scouted them.

    Always an OR bracket: (author = user) OR (scout = user) OR (not flagged).
    """
    not_flagged = func.coalesce(Post.flags["vordr"].as_boolean(), false()) == false()
    if not requester.user_id:
        return not_flagged
    return or_(
        Post.author_id == requester.user_id,
        Post.scout_id == requester.user_id,
        not_flagged,
    )


def apply_visibility_gate(
    requester: Requester,
    stmt: Select,
    post_types: Sequence[str],
    policy: VisibilityPolicy,
    source_types: Sequence[str] = (),
) -> Select:
    stmt = stmt.where(Post.type.in_(list(post_types)), Post.deleted.is_(False))

    if not policy.allow_private_posts:
        stmt = stmt.where(Post.private.is_(False))

    if (
        not policy.allow_squad_posts
        or policy.remove_non_public_threshold_squads
        or source_types
    ):
        stmt = stmt.join(Source, Source.id == Post.source_id)

    if not policy.allow_squad_posts:
        stmt = stmt.where(Source.type != SourceType.SQUAD.value)

    if policy.remove_non_public_threshold_squads:
        stmt = stmt.where(
            or_(
                Source.type != SourceType.SQUAD.value,
                Source.flags["publicThreshold"].as_boolean() == true(),
            )
        )

    if source_types:
        stmt = stmt.where(Source.type.in_(list(source_types)))

    if requester.user_id and policy.remove_hidden_posts:
        stmt = stmt.where(
            ~exists().where(
                UserPost.post_id == Post.id,
                UserPost.user_id == requester.user_id,
                UserPost.hidden.is_(True),
            )
        )

    if policy.remove_banned_posts:
        stmt = stmt.where(Post.banned.is_(False), Post.show_on_feed.is_(True))

    return stmt
