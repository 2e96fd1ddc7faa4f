"""Session management service"""
