"""Balance ledger, pricing and refunds."""
