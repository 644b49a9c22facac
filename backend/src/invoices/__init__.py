"""Sales invoices: drafts, totals, issuing and cancellation"""
