from contextlens.privacy.filter import PrivacyFilter

__all__ = ["PrivacyFilter"]
