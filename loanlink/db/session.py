from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from loanlink.core.settings import settings


def normalize_database_url(url: str) -> str:
    """Hosted Postgres URLs often carry ``ssl=true``; asyncpg wants ``sslmode=require``.

    Any other ``ssl`` value is passed through untouched.
    """
    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    ssl_val = query.get("ssl")
    if ssl_val and ssl_val.lower() in ("1", "true", "yes", "on"):
        query.pop("ssl", None)
        query.setdefault("sslmode", "require")
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query, doseq=True), parts.fragment))


def create_engine(database_url: str | None = None) -> AsyncEngine:
    return create_async_engine(database_url or settings.database_url, future=True, echo=False, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
