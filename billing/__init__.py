"""
billing — PayPal subscriptions: checkout, payment verification,
activation and webhook lifecycle events.
"""
