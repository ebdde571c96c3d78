"""
Finance Tracker - Controle Financeiro Pessoal

Personal finance tracker backed by SQLite with a Flask REST API.

License: MIT
"""

APP_NAME = "Controle Financeiro Pessoal"
__version__ = "1.0.0"
