from .instrument import QcodesTactor

__all__ = ["QcodesTactor"]
