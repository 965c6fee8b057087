"""Core domain package for pillarbot.

Core contains event classification, replies, and the enrollment engine without
any Mattermost or websocket-specific code, keeping the business logic portable.
"""
