from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from savanna.load_secrets import database_url, host

# DATABASE_URL wins; otherwise PostgreSQL parts, otherwise a local SQLite file.
if database_url:
    engine = create_async_engine(database_url)
elif host:
    from savanna.create_postgres_engine import engine
else:
    from savanna.create_sqlite_engine import engine

# Centralized session factory to avoid creating it in router modules.
Session = async_sessionmaker(
    autocommit=False,
    class_=AsyncSession,
    autoflush=True,
    bind=engine,
    expire_on_commit=False,
)
