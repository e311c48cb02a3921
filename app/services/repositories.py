"""
Repository layer abstracting storage (SQLAlchemy vs Firebase Firestore).

Every party read and write is scoped by restaurant slug.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from google.api_core.exceptions import GoogleAPICallError, NotFound
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import ObjectDeletedError, StaleDataError

from app.core.config import settings
from app.models import Party, PartyStatus, Subscription
from app.models.party import new_party_id
from app.schemas.party import PartyResponse
from app.services.errors import StoreError
from app.services.firebase_client import get_firestore_client

logger = logging.getLogger(__name__)


def use_firestore() -> bool:
    return settings.USE_FIREBASE is True


def _parse_ts(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _party_from_doc(doc_id: str, data: Dict[str, Any]) -> PartyResponse:
    return PartyResponse(
        id=doc_id,
        restaurant_slug=data["restaurant_slug"],
        name=data["name"],
        size=data["size"],
        phone=data.get("phone"),
        notes=data.get("notes"),
        status=data.get("status", PartyStatus.WAITING.value),
        created_at=_parse_ts(data["created_at"]),
        ready_at=_parse_ts(data.get("ready_at")),
    )


def snapshot(party) -> PartyResponse:
    """Detached copy of a party row, safe to hold after the session closes"""
    if isinstance(party, PartyResponse):
        return party
    return PartyResponse.model_validate(party)


def _to_store_value(value: Any) -> Any:
    return value.isoformat() if isinstance(value, datetime) else value


# -------- Party repository --------

class PartyRepo:
    @staticmethod
    def list_for_restaurant_sql(db: Session, slug: str, since: Optional[datetime] = None) -> List[Party]:
        query = db.query(Party).filter(Party.restaurant_slug == slug)
        if since is not None:
            query = query.filter(Party.created_at >= since)
        return query.order_by(Party.created_at.asc()).all()

    @staticmethod
    def get_sql(db: Session, slug: str, party_id: str) -> Optional[Party]:
        return db.query(Party).filter(Party.id == party_id, Party.restaurant_slug == slug).first()

    @staticmethod
    def create_sql(db: Session, slug: str, fields: Dict[str, Any]) -> Party:
        fields = {"created_at": datetime.utcnow(), **fields}
        party = Party(restaurant_slug=slug, status=PartyStatus.WAITING.value, **fields)
        db.add(party)
        db.commit()
        db.refresh(party)
        return party

    @staticmethod
    def update_sql(db: Session, party: Party, updates: Dict[str, Any]) -> Optional[Party]:
        for key, value in updates.items():
            setattr(party, key, value)
        party.updated_at = datetime.utcnow()
        try:
            db.commit()
            db.refresh(party)
        except (StaleDataError, ObjectDeletedError):
            # Row deleted by another request after it was read
            db.rollback()
            return None
        return party

    @staticmethod
    def delete_sql(db: Session, party: Party) -> None:
        db.delete(party)
        try:
            db.commit()
        except StaleDataError:
            # Already gone
            db.rollback()

    # Firestore shape: restaurants/{slug}/parties/{party_id}
    @staticmethod
    def _collection_fs(slug: str):
        fs = get_firestore_client()
        return fs.collection("restaurants").document(slug).collection("parties")

    @staticmethod
    def list_for_restaurant_fs(slug: str, since: Optional[datetime] = None) -> List[PartyResponse]:
        query = PartyRepo._collection_fs(slug)
        if since is not None:
            query = query.where("created_at", ">=", since.isoformat())
        docs = query.order_by("created_at").get()
        return [_party_from_doc(d.id, d.to_dict()) for d in docs]

    @staticmethod
    def get_fs(slug: str, party_id: str) -> Optional[PartyResponse]:
        doc = PartyRepo._collection_fs(slug).document(party_id).get()
        return _party_from_doc(doc.id, doc.to_dict()) if doc.exists else None

    @staticmethod
    def create_fs(slug: str, fields: Dict[str, Any]) -> PartyResponse:
        party_id = new_party_id()
        now = datetime.utcnow().isoformat()
        data = {
            "created_at": now,
            **{key: _to_store_value(value) for key, value in fields.items()},
            "restaurant_slug": slug,
            "status": PartyStatus.WAITING.value,
            "ready_at": None,
            "updated_at": now,
        }
        PartyRepo._collection_fs(slug).document(party_id).set(data)
        return _party_from_doc(party_id, data)

    @staticmethod
    def update_fs(slug: str, party_id: str, updates: Dict[str, Any]) -> Optional[PartyResponse]:
        doc_ref = PartyRepo._collection_fs(slug).document(party_id)
        data = {key: _to_store_value(value) for key, value in updates.items()}
        data["updated_at"] = datetime.utcnow().isoformat()
        try:
            # update() never creates: a party deleted meanwhile stays deleted
            doc_ref.update(data)
        except NotFound:
            return None
        doc = doc_ref.get()
        return _party_from_doc(doc.id, doc.to_dict()) if doc.exists else None

    @staticmethod
    def delete_fs(slug: str, party_id: str) -> None:
        PartyRepo._collection_fs(slug).document(party_id).delete()

    # Backend-agnostic entry points
    @staticmethod
    def list_for_restaurant(db: Session, slug: str, since: Optional[datetime] = None) -> List[Any]:
        try:
            if use_firestore():
                return PartyRepo.list_for_restaurant_fs(slug, since)
            return PartyRepo.list_for_restaurant_sql(db, slug, since)
        except (SQLAlchemyError, GoogleAPICallError) as e:
            logger.error(f"Failed to load parties for {slug}: {e}")
            raise StoreError("Could not load the waitlist") from e

    @staticmethod
    def get(db: Session, slug: str, party_id: str):
        try:
            if use_firestore():
                return PartyRepo.get_fs(slug, party_id)
            return PartyRepo.get_sql(db, slug, party_id)
        except (SQLAlchemyError, GoogleAPICallError) as e:
            logger.error(f"Failed to load party {party_id}: {e}")
            raise StoreError("Could not load the party") from e

    @staticmethod
    def create(db: Session, slug: str, fields: Dict[str, Any]):
        try:
            if use_firestore():
                return PartyRepo.create_fs(slug, fields)
            return PartyRepo.create_sql(db, slug, fields)
        except (SQLAlchemyError, GoogleAPICallError) as e:
            if not use_firestore():
                db.rollback()
            logger.error(f"Failed to create party for {slug}: {e}")
            raise StoreError("Could not add the party") from e

    @staticmethod
    def update(db: Session, party, updates: Dict[str, Any]):
        try:
            if use_firestore():
                return PartyRepo.update_fs(party.restaurant_slug, party.id, updates)
            return PartyRepo.update_sql(db, party, updates)
        except (SQLAlchemyError, GoogleAPICallError) as e:
            if not use_firestore():
                db.rollback()
            logger.error(f"Failed to update party {party.id}: {e}")
            raise StoreError("Could not update the party") from e

    @staticmethod
    def delete(db: Session, party) -> None:
        try:
            if use_firestore():
                PartyRepo.delete_fs(party.restaurant_slug, party.id)
            else:
                PartyRepo.delete_sql(db, party)
        except (SQLAlchemyError, GoogleAPICallError) as e:
            if not use_firestore():
                db.rollback()
            logger.error(f"Failed to delete party {party.id}: {e}")
            raise StoreError("Could not remove the party") from e


# -------- Subscription repository --------

class SubscriptionRepo:
    @staticmethod
    def get_by_restaurant_sql(db: Session, restaurant_id: str) -> Optional[Subscription]:
        return db.query(Subscription).filter(Subscription.restaurant_id == restaurant_id).first()

    @staticmethod
    def get_by_customer_sql(db: Session, customer_id: str) -> Optional[Subscription]:
        return db.query(Subscription).filter(Subscription.stripe_customer_id == customer_id).first()

    @staticmethod
    def upsert_sql(db: Session, restaurant_id: str, fields: Dict[str, Any]) -> Subscription:
        record = SubscriptionRepo.get_by_restaurant_sql(db, restaurant_id)
        if record is None:
            record = Subscription(restaurant_id=restaurant_id)
            db.add(record)
        for key, value in fields.items():
            setattr(record, key, value)
        record.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(record)
        return record

    @staticmethod
    def update_where_sql(db: Session, column: str, value: str, fields: Dict[str, Any]) -> int:
        fields = {**fields, "updated_at": datetime.utcnow()}
        count = db.query(Subscription).filter(getattr(Subscription, column) == value).update(fields)
        db.commit()
        return count

    # Firestore shape: subscriptions/{restaurant_id}
    @staticmethod
    def get_by_restaurant_fs(restaurant_id: str) -> Optional[Dict[str, Any]]:
        fs = get_firestore_client()
        doc = fs.collection("subscriptions").document(restaurant_id).get()
        return doc.to_dict() if doc.exists else None

    @staticmethod
    def get_by_customer_fs(customer_id: str) -> Optional[Dict[str, Any]]:
        fs = get_firestore_client()
        docs = fs.collection("subscriptions").where("stripe_customer_id", "==", customer_id).limit(1).get()
        return docs[0].to_dict() if docs else None

    @staticmethod
    def upsert_fs(restaurant_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        fs = get_firestore_client()
        data = {key: _to_store_value(value) for key, value in fields.items()}
        data.update({"restaurant_id": restaurant_id, "updated_at": datetime.utcnow().isoformat()})
        fs.collection("subscriptions").document(restaurant_id).set(data, merge=True)
        return data

    @staticmethod
    def update_where_fs(column: str, value: str, fields: Dict[str, Any]) -> int:
        fs = get_firestore_client()
        data = {key: _to_store_value(v) for key, v in fields.items()}
        data["updated_at"] = datetime.utcnow().isoformat()
        docs = fs.collection("subscriptions").where(column, "==", value).get()
        count = 0
        for doc in docs:
            try:
                doc.reference.update(data)
            except NotFound:
                continue
            count += 1
        return count

    # Backend-agnostic entry points
    @staticmethod
    def customer_id_for_restaurant(db: Session, restaurant_id: str) -> Optional[str]:
        if use_firestore():
            record = SubscriptionRepo.get_by_restaurant_fs(restaurant_id)
            return record.get("stripe_customer_id") if record else None
        record = SubscriptionRepo.get_by_restaurant_sql(db, restaurant_id)
        return record.stripe_customer_id if record else None

    @staticmethod
    def restaurant_for_customer(db: Session, customer_id: str) -> Optional[str]:
        if use_firestore():
            record = SubscriptionRepo.get_by_customer_fs(customer_id)
            return record.get("restaurant_id") if record else None
        record = SubscriptionRepo.get_by_customer_sql(db, customer_id)
        return record.restaurant_id if record else None

    @staticmethod
    def upsert(db: Session, restaurant_id: str, fields: Dict[str, Any]) -> None:
        if use_firestore():
            SubscriptionRepo.upsert_fs(restaurant_id, fields)
        else:
            SubscriptionRepo.upsert_sql(db, restaurant_id, fields)

    @staticmethod
    def update_where(db: Session, column: str, value: str, fields: Dict[str, Any]) -> int:
        if use_firestore():
            return SubscriptionRepo.update_where_fs(column, value, fields)
        return SubscriptionRepo.update_where_sql(db, column, value, fields)
