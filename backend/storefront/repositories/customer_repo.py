from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.models.customer import Customer
from storefront.utils.log import get_logger

log = get_logger(__name__)


class CustomerRepository:
    def __init__(self, db: Session):
        # db is the caller's session (request-scoped)
        self.db = db

    def get_by_email(self, email: str) -> Optional[Customer]:
        return self.db.query(Customer).filter(Customer.email == email).first()

    def upsert(
        self,
        email: str,
        name: str,
        phone: Optional[str] = None,
        address: Optional[dict] = None,
        user_id: Optional[str] = None,
    ) -> Customer:
        """
        Create or update the customer keyed by email.

        A new row is INSERTed and committed from a short-lived session so a
        concurrent checkout with the same email sees it immediately; the loser
        of that race gets an IntegrityError and updates the winner's row.
        Returns the record as seen by the caller's session.
        """
        email = email.strip().lower()
        c = self.get_by_email(email)
        if c is None:
            try:
                with Session(bind=self.db.get_bind()) as s:
                    s.add(Customer(email=email, name=name, phone=phone, address=address, user_id=user_id))
                    s.commit()
                return self.get_by_email(email)
            except IntegrityError:
                log.debug("upsert(): insert collision for email=%r", email)
                c = self.get_by_email(email)
                if c is None:
                    raise
        c.name = name
        c.phone = phone
        c.address = address
        if user_id:
            c.user_id = user_id
        self.db.flush()
        return c
