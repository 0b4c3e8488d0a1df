from sqlalchemy import create_engine, Column, Integer, String, DateTime, ForeignKey, JSON
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
import datetime

Base = declarative_base()


def utcnow():
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class StoredFile(Base):
    __tablename__ = "excel_files"

    id = Column(String, primary_key=True)
    owner_uid = Column(String, nullable=False, index=True)
    file_name = Column(String, nullable=False)
    # Assigned by the store on insert, never by the caller
    upload_date = Column(DateTime, nullable=False, default=utcnow, index=True)
    headers = Column(JSON, nullable=False, default=list)


class StoredRow(Base):
    __tablename__ = "excel_rows"

    id = Column(String, primary_key=True)
    excel_file_id = Column(String, ForeignKey("excel_files.id"), nullable=False, index=True)
    owner_uid = Column(String, nullable=False)
    row_index = Column(Integer, nullable=False)
    column_a = Column(String, nullable=False, default="")
    column_b = Column(String, nullable=False, default="")
    column_c = Column(String, nullable=False, default="")
    column_d = Column(String, nullable=False, default="")
    column_e = Column(String, nullable=False, default="")


def build_engine(database_url: str) -> Engine:
    """Create the engine for the table store"""
    if database_url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        # In-memory databases must share one connection across threads
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        return create_engine(database_url, **options)
    return create_engine(database_url)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Create tables
def create_tables(engine: Engine):
    Base.metadata.create_all(bind=engine)
