import ssl

from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.ext.asyncio.session import AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from app.core import config

# this constructs a connection string to our database
db_url = URL.create(
    drivername="postgresql+asyncpg",
    username=config.config.db_user,
    password=config.config.db_password,
    host=config.config.db_host,
    port=config.config.db_port,
    database=config.config.db_name,
)

# upgrade connection to use SSL
connect_args = {}
if config.config.render_env == config.Environment.PRODUCTION:
    ssl_ctx = ssl.create_default_context()
    connect_args["ssl"] = ssl_ctx

engine = create_async_engine(
    db_url,
    echo=config.config.db_echo,
    future=True,
    connect_args=connect_args,
)

# factory for creating asynchronous sessions (AsyncSession)
async_session = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    # objects remain available after committing a transaction
    expire_on_commit=False,
)


async def init_db():
    # every table model has to be registered on the metadata first
    import app.models.tables  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
