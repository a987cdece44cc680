from .account import account_bp
from .core import core_bp
from .payments import payments_bp

__all__ = ['account_bp', 'core_bp', 'payments_bp']
