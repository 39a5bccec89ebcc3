from collections.abc import Generator

from .session import SessionLocalMarket


def get_market_db() -> Generator:
    db = SessionLocalMarket()
    try:
        yield db
    finally:
        db.close()
