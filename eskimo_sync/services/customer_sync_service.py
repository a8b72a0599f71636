"""
Customer Sync Service

Imports EPOS customers as local store accounts and exports local accounts
to the EPOS customer register.
"""

import re
import logging
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from eskimo_sync.config import EskimoSettings
from eskimo_sync.models import Customer
from eskimo_sync.repositories.customer_repository import CustomerRepository
from eskimo_sync.services.error_handler import ReconciliationError, ValidationError
from eskimo_sync.services.eskimo_models import EskimoCustomer, to_str

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
COUNTRY_CODE = 'GB'
TITLE_ID = 1
ADDRESS_SEPARATOR = '\r\n'


def valid_email(email: str) -> bool:
    return bool(email) and bool(EMAIL_PATTERN.match(email))


def split_address(address: str) -> Dict[str, str]:
    """First line is the street address, the second (if any) the city."""
    lines = [line.strip() for line in to_str(address).splitlines()]
    return {
        'address_1': lines[0] if lines else '',
        'city': lines[1] if len(lines) > 1 else '',
    }


class CustomerSyncService:
    """Service for customer import and export."""

    def __init__(self, db_session: Session, settings: EskimoSettings, api=None):
        self.db_session = db_session
        self.settings = settings
        self.api = api
        self.customer_repo = CustomerRepository(db_session)

    def import_customer(self, remote: EskimoCustomer) -> Customer:
        """Create a local account from an EPOS customer record."""
        email = remote.email.strip()
        if not valid_email(email):
            raise ValidationError(f"Invalid Customer Email[{email}]")

        if self.customer_repo.get_by_email(email):
            raise ReconciliationError(f"Customer email exists [{email}]")

        username = self._username(remote)
        address = split_address(remote.address)
        details = {
            'first_name': remote.forename,
            'last_name': remote.surname,
            'company': remote.company_name,
            'address_1': address['address_1'],
            'address_2': '',
            'city': address['city'],
            'state': '',
            'postcode': remote.postcode,
            'country': COUNTRY_CODE,
            'email': email,
            'phone': remote.telephone,
            'mobile': remote.mobile,
        }

        customer = self.customer_repo.create(
            email=email,
            username=username,
            first_name=remote.forename,
            last_name=remote.surname,
            billing=dict(details),
            shipping=dict(details),
            epos_id=remote.id,
            epos_notes=remote.notes
        )
        logger.info(f"Imported customer [{remote.id}] as {customer.id} username [{username}]")
        return customer

    def _username(self, remote: EskimoCustomer) -> str:
        base = f"{remote.forename}.{remote.surname}"
        username = base
        suffix = 2
        while self.customer_repo.username_taken(username):
            username = f"{base}{suffix}"
            suffix += 1
        return username

    def customer_exists(self, email: str) -> bool:
        """Check the EPOS customer register for an email address."""
        email = (email or '').strip()
        if not valid_email(email):
            raise ValidationError(f"Invalid Customer Email[{email}]")
        return bool(self.api.customers_search({'EmailAddress': email}))

    def build_customer_payload(self, customer: Customer, update: bool = False) -> Dict[str, Any]:
        """EPOS customer payload from the local billing details."""
        billing = customer.billing or {}

        if update:
            lines: List[str] = [billing.get('address_1', ''), billing.get('city', '')]
        else:
            lines = [billing.get('address_1', ''), billing.get('address_2', ''),
                     billing.get('city', ''), billing.get('state', '')]

        payload = {
            'ActiveAccount': True,
            'EmailAddress': customer.email,
            'TitleID': TITLE_ID,
            'CountryCode': COUNTRY_CODE,
            'Forename': billing.get('first_name', customer.first_name or ''),
            'Surname': billing.get('last_name', customer.last_name or ''),
            'CompanyName': billing.get('company', ''),
            'Notes': customer.epos_notes or '',
            'Address': ADDRESS_SEPARATOR.join(to_str(line) for line in lines),
            'Postcode': billing.get('postcode', ''),
            'Telephone': billing.get('phone', ''),
            'Mobile': billing.get('mobile', ''),
        }
        if update:
            payload['ID'] = customer.epos_id
        return payload

    def export_customer(self, customer_id: int, update: bool = False) -> str:
        """
        Insert or update the EPOS record for a local customer.

        Returns the EPOS customer ID, which is stored on the local account.
        """
        customer = self._get_customer(customer_id)

        if update and not customer.epos_id:
            raise ReconciliationError(f"EPOS user not exists ID[{customer.id}]")
        if not update and customer.epos_id:
            raise ReconciliationError(f"EPOS user exists ID[{customer.id}] EPOS ID[{customer.epos_id}]")

        payload = self.build_customer_payload(customer, update=update)
        if update:
            response = self.api.customers_update(payload)
        else:
            response = self.api.customers_insert(payload)

        epos_id = to_str(response.get('ID')) if isinstance(response, dict) else ''
        if update:
            epos_id = epos_id or customer.epos_id
        if not epos_id:
            raise ReconciliationError(f"Invalid EPOS customer response for ID[{customer.id}]")

        self.customer_repo.update(customer, epos_id=epos_id)
        logger.info(f"Customer {customer.id} {'updated' if update else 'inserted'} as EPOS ID [{epos_id}]")
        return epos_id

    def _get_customer(self, customer_id: int) -> Customer:
        if not customer_id or int(customer_id) <= 0:
            raise ValidationError(f"Invalid customer ID[{customer_id}]")
        customer = self.customer_repo.get(int(customer_id))
        if customer is None:
            raise ReconciliationError(f"Invalid customer ID[{customer_id}]")
        return customer

