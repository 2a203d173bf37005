from repositories.addresses import AddressRepository
from repositories.catalog import CategoryRepository, ProductRepository
from repositories.contacts import ContactRepository
from repositories.payments import OrderRepository, PaymentRequestRepository, PaymentSettingsRepository
from repositories.users import UserRepository

__all__ = [
    "AddressRepository",
    "CategoryRepository",
    "ContactRepository",
    "OrderRepository",
    "PaymentRequestRepository",
    "PaymentSettingsRepository",
    "ProductRepository",
    "UserRepository",
]
