"""Services of the order engine: cart cache, remote orders, payment, tables."""
