"""Content moderation service"""
