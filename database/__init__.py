from .connection import Database
from .models import Base, Event, Order, Payment, Product, TrackingEntry, User

__all__ = ["Database", "Base", "Event", "Order", "Payment", "Product", "TrackingEntry", "User"]
