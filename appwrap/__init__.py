"""appwrap - Website-to-Android app wrapper builder.

This package validates wrapper build requests, submits them to Expo
Application Services (EAS), mirrors the provider's build status, and relays
push notifications to apps built from the WebView template.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
