"""txspec FastAPI Server"""
from .client import TxSpecClient

__all__ = ['TxSpecClient']
