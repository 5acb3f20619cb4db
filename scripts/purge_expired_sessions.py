#!/usr/bin/env python3
"""Delete expired rows from the SQL session store.

Usage:
  DATABASE_URL="sqlite+aiosqlite:///./fast_lists.db" python scripts/purge_expired_sessions.py

Safe to run from cron while the server is up; the server also purges once at
startup and drops expired sessions as they are loaded.
"""
import asyncio


async def main():
    from fast_lists.db import init_db
    from fast_lists.sessions import SqlSessionStore

    await init_db()
    removed = await SqlSessionStore().purge_expired()
    print(f"purged {removed} expired sessions")


if __name__ == '__main__':
    asyncio.run(main())
