"""
External service integrations: the attendance provider and email delivery.
"""
