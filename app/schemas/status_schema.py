from enum import Enum


class UserRole(str, Enum):
    CUSTOMER = "customer"
    SHOPPER = "shopper"


class OrderStatus(str, Enum):
    DELIVERED = "delivered"


class OrderType(str, Enum):
    REGULAR = "regular"
    REEL = "reel"
    RESTAURANT = "restaurant"


class TransactionType(str, Enum):
    PAYMENT = "payment"
    WITHDRAWAL = "withdrawal"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class RefundStatus(str, Enum):
    PENDING = "pending"


class PayoutStatus(str, Enum):
    PENDING = "pending"


class InvoiceStatus(str, Enum):
    COMPLETED = "completed"


class EarningsPeriod(str, Enum):
    TODAY = "today"
    THIS_WEEK = "this-week"
    LAST_WEEK = "last-week"
    THIS_MONTH = "this-month"
    LAST_MONTH = "last-month"
