"""
CLI Package for JML Lite.

Provides the jmlctl administration command.
"""
