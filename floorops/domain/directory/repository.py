"""Directory repository - Database operations for clients, engineers and materials"""

from typing import Optional, Type

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from ...models import Client, ClientType, Engineer, Material

DirectoryModel = Type[Client] | Type[ClientType] | Type[Engineer] | Type[Material]


class DirectoryRepository:
    """Repository for directory lookups and admin maintenance"""

    @staticmethod
    def get(db: Session, model: DirectoryModel, entry_id: str):
        """Get a directory entry by ID"""
        return db.query(model).filter(model.id == entry_id).first()

    @staticmethod
    def search(
        db: Session, model: DirectoryModel, active_only: bool = False, search: Optional[str] = None
    ) -> Query:
        """Build a filtered query ordered by name"""
        query = db.query(model)

        if active_only:
            query = query.filter(model.is_active.is_(True))

        if search:
            search_term = f"%{search.lower()}%"
            query = query.filter(model.name.ilike(search_term))

        return query.order_by(model.name.asc())

    @staticmethod
    def create(db: Session, model: DirectoryModel, **data):
        entry = model(**data)
        db.add(entry)
        db.commit()
        db.refresh(entry)
        return entry

    @staticmethod
    def update(db: Session, entry, **updates):
        """Update an entry with provided fields"""
        for key, value in updates.items():
            if value is not None and hasattr(entry, key):
                setattr(entry, key, value)

        db.commit()
        db.refresh(entry)
        return entry

    @staticmethod
    def get_engineer_by_email(db: Session, email: str) -> Optional[Engineer]:
        return db.query(Engineer).filter(Engineer.email == email).first()

    @staticmethod
    def list_client_types(db: Session) -> list[ClientType]:
        return db.query(ClientType).order_by(ClientType.name.asc()).all()

    @staticmethod
    def get_client_type_by_name(db: Session, name: str) -> Optional[ClientType]:
        return db.query(ClientType).filter(func.lower(ClientType.name) == name.lower()).first()
