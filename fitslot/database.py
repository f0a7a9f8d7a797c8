from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from config.config import Config
from fitslot.models.base import Base


class Database:
    """Owns the engine and session factory for one process"""

    def __init__(self, url: str = None, echo: bool = False):
        self.url = url or Config.DATABASE_URL
        self.engine = create_engine(
            self.url,
            echo=echo,
            connect_args={'check_same_thread': False} if 'sqlite' in self.url else {}
        )
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine
        )

    def init_db(self):
        """Initialize database, create all tables"""
        import fitslot.models  # noqa: F401 - registers all models
        Base.metadata.create_all(bind=self.engine)

    def drop_db(self):
        """Drop all tables"""
        import fitslot.models  # noqa: F401
        Base.metadata.drop_all(bind=self.engine)

    def dispose(self):
        self.engine.dispose()

    @contextmanager
    def session(self):
        """Provide a transactional scope for database operations"""
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class DatabaseManager:
    """Generic CRUD helpers for one model class"""

    def __init__(self, database: Database, model_class):
        self.database = database
        self.model_class = model_class

    def create(self, **kwargs):
        """Create a new record"""
        with self.database.session() as db:
            instance = self.model_class(**kwargs)
            db.add(instance)
            db.flush()
            db.refresh(instance)
            return instance

    def get(self, id):
        """Get record by ID"""
        with self.database.session() as db:
            return db.query(self.model_class).filter(self.model_class.id == id).first()

    def get_by(self, **kwargs):
        """Get record by field values"""
        with self.database.session() as db:
            return self._filtered(db, kwargs).first()

    def filter(self, **kwargs):
        """Filter records by field values"""
        with self.database.session() as db:
            return self._filtered(db, kwargs).all()

    def update(self, id, **kwargs):
        """Update a record"""
        with self.database.session() as db:
            instance = db.query(self.model_class).filter(self.model_class.id == id).first()
            if instance:
                for key, value in kwargs.items():
                    setattr(instance, key, value)
                db.flush()
                db.refresh(instance)
            return instance

    def delete(self, id):
        """Delete a record"""
        with self.database.session() as db:
            instance = db.query(self.model_class).filter(self.model_class.id == id).first()
            if instance:
                db.delete(instance)
                return True
            return False

    def count(self, **kwargs):
        """Count records"""
        with self.database.session() as db:
            return self._filtered(db, kwargs).count()

    def exists(self, **kwargs):
        """Check if record exists"""
        return self.count(**kwargs) > 0

    def _filtered(self, db, criteria):
        query = db.query(self.model_class)
        for key, value in criteria.items():
            query = query.filter(getattr(self.model_class, key) == value)
        return query
