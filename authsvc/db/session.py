from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker


def build_engine(db_url: str, timeout: float = 5.0) -> AsyncEngine:
    connect_args = {}
    if db_url.startswith("sqlite"):
        # espera acotada ante bloqueos de escritura concurrentes
        connect_args["timeout"] = timeout
    return create_async_engine(db_url, echo=False, connect_args=connect_args)


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)
