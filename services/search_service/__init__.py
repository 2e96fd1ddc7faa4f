"""Marketplace search service"""
