"""SwiftSale: point-of-sale, customer ledger and inventory service."""

__version__ = "1.0.0"
