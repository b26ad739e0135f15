"""Database configuration and initialization."""
from sqlalchemy import BigInteger, Integer, create_engine, event
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

# Create SQLAlchemy base
Base = declarative_base()

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer, 'sqlite')

# Global session and engine
engine = None
db_session = None


def _engine_options(database_uri, app):
    options = {'echo': app.config.get('SQLALCHEMY_ECHO', False)}
    if database_uri.startswith('sqlite'):
        options['connect_args'] = {'check_same_thread': False}
        if ':memory:' in database_uri or database_uri in ('sqlite://', 'sqlite+pysqlite://'):
            # Keep a single connection so every session sees the same in-memory database
            options['poolclass'] = StaticPool
    else:
        options.update(
            pool_pre_ping=True,  # Enable connection health checks
            pool_size=10,
            max_overflow=20
        )
    return options


def init_db(app):
    """Initialize database connection."""
    global engine, db_session

    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    engine = create_engine(database_uri, **_engine_options(database_uri, app))

    if engine.dialect.name == 'sqlite':
        @event.listens_for(engine, 'connect')
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute('PRAGMA foreign_keys=ON')
            cursor.close()

    db_session = scoped_session(
        sessionmaker(
            autoflush=False,
            bind=engine,
            expire_on_commit=app.config.get('SQLALCHEMY_EXPIRE_ON_COMMIT', True)
        )
    )

    Base.query = db_session.query_property()

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def create_all():
    """Create every table known to the models package."""
    import jewelquote.models  # noqa: F401 - registers mappers on Base.metadata
    Base.metadata.create_all(bind=engine)


def get_session():
    """Get database session."""
    return db_session


def get_engine():
    """Get the engine bound by init_db."""
    return engine
