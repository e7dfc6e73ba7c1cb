from sqlalchemy import create_engine

from tixledger.core.config import settings

# Workers run outside the event loop; platform-level jobs use a plain sync engine
sync_engine = create_engine(settings.DATABASE_URL_SYNC, pool_pre_ping=True)
