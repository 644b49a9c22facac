"""Outbound webhooks: subscriptions, signed deliveries and retries"""
