"""OnwardFare - cheapest onward flight quotes and no-payment holds over Duffel."""
__version__ = "1.0.0"
