"""
Conversation Quota Tracker

Stores assistant conversations (sessions, their message log and the actions
performed in them) and answers the daily usage questions that gate new
sessions.

Usage is counted per (user, restaurant) over every session started on the
restaurant-local day, not per session. Looking up a missing session is only
an error for end_session; every other operation treats it as a no-op so a
lost history never blocks a request.
"""

import logging
from datetime import date, timedelta
from typing import Any, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dineai.core.config import Settings, get_settings
from dineai.core.exceptions import SessionNotFound
from dineai.database import SessionFactory, as_utc, run_in_transaction, utcnow
from dineai.models import ConversationMessage, ConversationSession, SessionStatus
from dineai.services.permissions import normalize_role

logger = logging.getLogger(__name__)

CLEANUP_BATCH_SIZE = 100


def _iso(value) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


def session_to_dict(session: ConversationSession) -> dict[str, Any]:
    return {
        "session_id": session.id,
        "restaurant_id": session.restaurant_id,
        "user_id": session.user_id,
        "role": session.role,
        "session_type": session.session_type,
        "response_mode": session.response_mode,
        "status": session.status.value,
        "started_at": _iso(session.started_at),
        "ended_at": _iso(session.ended_at),
        "duration_seconds": session.duration_seconds,
        "summary": session.summary,
        "message_count": session.message_count,
        "tokens_used": session.tokens_used,
        "actions_performed": list(session.actions_performed or []),
    }


def message_to_dict(message: ConversationMessage) -> dict[str, Any]:
    return {
        "id": message.id,
        "role": message.role,
        "content": message.content,
        "audio_url": message.audio_url,
        "tool_name": message.tool_name,
        "tool_result": message.tool_result,
        "metadata": message.message_metadata or {},
        "timestamp": _iso(message.created_at),
    }


class ConversationQuotaTracker:
    """
    Session store and daily quota accounting.

    Holds no in-memory session state: every call reads the store.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        settings: Optional[Settings] = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()

    async def _get(self, db: AsyncSession, session_id: str) -> Optional[ConversationSession]:
        return await db.get(ConversationSession, session_id)

    # =========================================================================
    # SESSIONS
    # =========================================================================

    async def start_session(
        self,
        restaurant_id: str,
        user_id: str,
        role: Optional[str] = None,
        session_type: str = "voice",
        response_mode: str = "voice",
    ) -> dict[str, Any]:
        async def _start(db: AsyncSession) -> dict[str, Any]:
            session = ConversationSession(
                restaurant_id=restaurant_id,
                user_id=user_id,
                role=normalize_role(role),
                session_type=session_type,
                response_mode=response_mode,
                status=SessionStatus.ACTIVE,
                started_at=utcnow(),
                duration_seconds=0,
                message_count=0,
                tokens_used=0,
                actions_performed=[],
            )
            db.add(session)
            await db.flush()
            return session_to_dict(session)

        session = await run_in_transaction(self.session_factory, _start, label="start session")
        logger.info(
            f"Session {session['session_id']} started for {user_id} "
            f"({restaurant_id}, {session['role']}, {session_type})"
        )
        return session

    async def get_session(self, session_id: str) -> Optional[dict[str, Any]]:
        async with self.session_factory() as db:
            session = await self._get(db, session_id)
            return session_to_dict(session) if session else None

    async def get_active_session(
        self,
        user_id: str,
        restaurant_id: str,
    ) -> Optional[dict[str, Any]]:
        """Most recently started active session of the user, if any."""
        async with self.session_factory() as db:
            session = await db.scalar(
                select(ConversationSession)
                .where(
                    ConversationSession.user_id == user_id,
                    ConversationSession.restaurant_id == restaurant_id,
                    ConversationSession.status == SessionStatus.ACTIVE,
                )
                .order_by(ConversationSession.started_at.desc())
                .limit(1)
            )
            return session_to_dict(session) if session else None

    async def end_session(
        self,
        session_id: str,
        summary: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Close a session, recording its duration and a summary.

        Raises:
            SessionNotFound: no session with that id
        """
        generated = None if summary else await self.generate_summary(session_id)

        async def _end(db: AsyncSession) -> dict[str, Any]:
            session = await self._get(db, session_id)
            if session is None:
                raise SessionNotFound(session_id)
            now = utcnow()
            started_at = as_utc(session.started_at) or now
            session.status = SessionStatus.COMPLETED
            session.ended_at = now
            session.duration_seconds = max(0, round((now - started_at).total_seconds()))
            session.summary = summary or generated
            session.updated_at = now
            await db.flush()
            return {
                "session_id": session.id,
                "status": session.status.value,
                "duration_seconds": session.duration_seconds,
                "summary": session.summary,
            }

        result = await run_in_transaction(self.session_factory, _end, label="end session")
        logger.info(f"Session {session_id} ended after {result['duration_seconds']}s")
        return result

    # =========================================================================
    # MESSAGE LOG
    # =========================================================================

    async def record_message(
        self,
        session_id: str,
        role: str,
        content: Optional[str],
        tool_name: Optional[str] = None,
        tool_result: Optional[dict[str, Any]] = None,
        metadata: Optional[dict[str, Any]] = None,
        audio_url: Optional[str] = None,
    ) -> Optional[dict[str, Any]]:
        """Append a message and bump the session's message count."""

        async def _record(db: AsyncSession) -> Optional[dict[str, Any]]:
            if await self._get(db, session_id) is None:
                return None
            message = ConversationMessage(
                session_id=session_id,
                role=role,
                content=content,
                audio_url=audio_url,
                tool_name=tool_name,
                tool_result=tool_result,
                message_metadata=metadata or {},
                created_at=utcnow(),
            )
            db.add(message)
            await db.execute(
                update(ConversationSession)
                .where(ConversationSession.id == session_id)
                .values(
                    message_count=ConversationSession.message_count + 1,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            await db.flush()
            return message_to_dict(message)

        message = await run_in_transaction(self.session_factory, _record, label="record message")
        if message is None:
            logger.warning(f"Message dropped: session {session_id} not found")
        return message

    async def record_action(
        self,
        session_id: str,
        name: str,
        params: Optional[dict[str, Any]] = None,
        success: bool = True,
        result: Optional[dict[str, Any]] = None,
    ) -> Optional[dict[str, Any]]:
        """Append a tool invocation to the session's action log."""
        action = {
            "action": name,
            "params": params or {},
            "success": success,
            "result": result,
            "timestamp": utcnow().isoformat(),
        }

        async def _record(db: AsyncSession) -> Optional[dict[str, Any]]:
            session = await db.scalar(
                select(ConversationSession)
                .where(ConversationSession.id == session_id)
                .with_for_update()
            )
            if session is None:
                return None
            # JSON columns only notice reassignment, not in-place appends
            session.actions_performed = list(session.actions_performed or []) + [action]
            session.updated_at = utcnow()
            await db.flush()
            return action

        recorded = await run_in_transaction(self.session_factory, _record, label="record action")
        if recorded is None:
            logger.warning(f"Action {name} dropped: session {session_id} not found")
        return recorded

    async def update_token_usage(self, session_id: str, tokens: int) -> None:
        async def _update(db: AsyncSession) -> None:
            await db.execute(
                update(ConversationSession)
                .where(ConversationSession.id == session_id)
                .values(
                    tokens_used=ConversationSession.tokens_used + tokens,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )

        await run_in_transaction(self.session_factory, _update, label="token usage")

    async def get_messages(self, session_id: str, limit: int = 50) -> list[dict[str, Any]]:
        async with self.session_factory() as db:
            rows = await db.scalars(
                select(ConversationMessage)
                .where(ConversationMessage.session_id == session_id)
                .order_by(ConversationMessage.created_at, ConversationMessage.id)
                .limit(limit)
            )
            return [message_to_dict(m) for m in rows]

    async def get_recent_messages(self, session_id: str, count: int = 10) -> list[dict[str, Any]]:
        """Last ``count`` messages, oldest first."""
        async with self.session_factory() as db:
            rows = await db.scalars(
                select(ConversationMessage)
                .where(ConversationMessage.session_id == session_id)
                .order_by(ConversationMessage.created_at.desc(), ConversationMessage.id.desc())
                .limit(count)
            )
            messages = [message_to_dict(m) for m in rows]
        messages.reverse()
        return messages

    async def build_history(self, session_id: str, max_messages: int = 10) -> list[dict[str, str]]:
        """Recent user/assistant turns in chat-completion message format."""
        messages = await self.get_recent_messages(session_id, max_messages)
        return [
            {"role": m["role"], "content": m["content"] or ""}
            for m in messages
            if m["role"] in ("user", "assistant")
        ]

    async def get_conversation_details(self, session_id: str) -> Optional[dict[str, Any]]:
        session = await self.get_session(session_id)
        if session is None:
            return None
        session["messages"] = await self.get_messages(session_id)
        return session

    async def generate_summary(self, session_id: str) -> str:
        """
        One-line summary from the first user message, the message count and
        the distinct actions performed.
        """
        messages = await self.get_messages(session_id, limit=10_000)
        if not messages:
            return "No messages in this conversation"

        session = await self.get_session(session_id)
        action_names: list[str] = []
        for action in (session or {}).get("actions_performed", []):
            name = action.get("action")
            if name and name not in action_names:
                action_names.append(name)

        summary = f"Conversation with {len(messages)} messages"
        if action_names:
            summary += f". Actions: {', '.join(action_names)}"

        first_user = next((m for m in messages if m["role"] == "user"), None)
        if first_user and first_user["content"]:
            limit = self.settings.summary_topic_length
            content = first_user["content"]
            topic = content[:limit] + ("..." if len(content) > limit else "")
            summary = f"{topic} - {summary}"
        return summary

    # =========================================================================
    # QUOTA
    # =========================================================================

    async def daily_usage(
        self,
        user_id: str,
        restaurant_id: str,
        as_of: Optional[date] = None,
    ) -> dict[str, Any]:
        """Totals over the user's sessions started on the given local day."""
        day = as_of or self.settings.local_today()
        start, end = self.settings.day_bounds(day)

        async with self.session_factory() as db:
            row = (await db.execute(
                select(
                    func.count(ConversationSession.id),
                    func.coalesce(func.sum(ConversationSession.message_count), 0),
                    func.coalesce(func.sum(ConversationSession.duration_seconds), 0),
                    func.coalesce(func.sum(ConversationSession.tokens_used), 0),
                ).where(
                    ConversationSession.user_id == user_id,
                    ConversationSession.restaurant_id == restaurant_id,
                    ConversationSession.started_at >= start,
                    ConversationSession.started_at < end,
                )
            )).one()

        return {
            "date": day.isoformat(),
            "sessions": int(row[0]),
            "messages": int(row[1]),
            "duration_seconds": int(row[2]),
            "tokens": int(row[3]),
        }

    async def check_limit(self, user_id: str, restaurant_id: str, limit: int) -> dict[str, Any]:
        usage = await self.daily_usage(user_id, restaurant_id)
        used = usage["messages"]
        return {
            "allowed": used < limit,
            "used": used,
            "limit": limit,
            "remaining": max(0, limit - used),
        }

    # =========================================================================
    # HISTORY & MAINTENANCE
    # =========================================================================

    async def conversation_history(
        self,
        restaurant_id: str,
        user_id: Optional[str] = None,
        limit: int = 20,
    ) -> list[dict[str, Any]]:
        """Completed sessions, newest first."""
        stmt = select(ConversationSession).where(
            ConversationSession.restaurant_id == restaurant_id,
            ConversationSession.status == SessionStatus.COMPLETED,
        )
        if user_id:
            stmt = stmt.where(ConversationSession.user_id == user_id)
        stmt = stmt.order_by(ConversationSession.started_at.desc()).limit(limit)

        async with self.session_factory() as db:
            sessions = list(await db.scalars(stmt))

        return [
            {
                "id": s.id,
                "session_type": s.session_type,
                "started_at": _iso(s.started_at),
                "duration_seconds": s.duration_seconds,
                "summary": s.summary,
                "message_count": s.message_count,
                "actions_count": len(s.actions_performed or []),
            }
            for s in sessions
        ]

    async def cleanup_old_conversations(
        self,
        restaurant_id: Optional[str] = None,
        days_to_keep: Optional[int] = None,
    ) -> dict[str, int]:
        """
        Delete sessions started before the retention cutoff, with their
        messages. At most CLEANUP_BATCH_SIZE sessions per restaurant per run.
        """
        days = days_to_keep or self.settings.conversation_retention_days
        cutoff = utcnow() - timedelta(days=days)

        if restaurant_id:
            restaurants = [restaurant_id]
        else:
            async with self.session_factory() as db:
                restaurants = list(await db.scalars(
                    select(ConversationSession.restaurant_id)
                    .where(ConversationSession.started_at < cutoff)
                    .distinct()
                ))

        deleted = 0
        for tenant in restaurants:

            async def _purge(db: AsyncSession, tenant: str = tenant) -> int:
                ids = list(await db.scalars(
                    select(ConversationSession.id)
                    .where(
                        ConversationSession.restaurant_id == tenant,
                        ConversationSession.started_at < cutoff,
                    )
                    .order_by(ConversationSession.started_at)
                    .limit(CLEANUP_BATCH_SIZE)
                ))
                if not ids:
                    return 0
                await db.execute(
                    delete(ConversationMessage).where(ConversationMessage.session_id.in_(ids))
                    .execution_options(synchronize_session=False)
                )
                await db.execute(
                    delete(ConversationSession).where(ConversationSession.id.in_(ids))
                    .execution_options(synchronize_session=False)
                )
                return len(ids)

            count = await run_in_transaction(
                self.session_factory, _purge, label=f"cleanup conversations {tenant}"
            )
            if count:
                logger.info(f"Deleted {count} conversations older than {days} days for {tenant}")
            deleted += count

        return {"deleted": deleted}
