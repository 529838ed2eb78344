"""
Pytest configuration shared by the whole suite.
Environment is set before any application module reads settings.
"""
import os

# Set testing environment before importing app
os.environ["TESTING"] = "True"
os.environ["DEBUG"] = "False"
os.environ["EMAIL_USE_CELERY"] = "False"
os.environ["BLOCKCHAIN_API_KEY"] = ""
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["COINBASE_API_KEY"] = "cb_test_key"
os.environ["COINBASE_WEBHOOK_SECRET"] = "cb_webhook_secret"
os.environ["NOWPAYMENTS_API_KEY"] = "np_test_key"
os.environ["NOWPAYMENTS_IPN_SECRET"] = "np_ipn_secret"
os.environ["SITE_URL"] = "https://shop.example.com"
