#!/usr/bin/env python3
"""List sessions stored in the SQL session store.

Usage:
  DATABASE_URL="sqlite+aiosqlite:///./fast_lists.db" python scripts/list_sessions.py

Prints one line per session row: id, expiry and how many lists/todos it
holds. Session tokens are never printed.
"""
import os
import asyncio
from sqlmodel import select


async def main():
    # import here so we pick up DATABASE_URL if set
    from fast_lists.db import init_db, async_session
    from fast_lists.models import Session, SessionData

    print(f"Using DATABASE_URL={os.getenv('DATABASE_URL')}")
    await init_db()

    async with async_session() as sess:
        q = await sess.exec(select(Session).order_by(Session.modified_at))
        rows = q.all()
    if not rows:
        print("No sessions found in DB.")
        return
    print(f"Found {len(rows)} sessions:\n")
    for row in rows:
        data = SessionData.model_validate_json(row.data_json)
        n_todos = sum(len(lst.todos) for lst in data.lists)
        print(f"id={row.id} modified={row.modified_at} expires={row.expires_at} lists={len(data.lists)} todos={n_todos}")


if __name__ == '__main__':
    asyncio.run(main())
