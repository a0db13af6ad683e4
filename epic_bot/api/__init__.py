"""
HTTP surface: Slack webhooks and health checks.
"""
