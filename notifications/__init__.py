"""
NOTIFICATIONS App - Out-of-band channels for FLUX

Sends delivery validation codes to end customers by SMS (Twilio).
"""
