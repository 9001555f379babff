"""
Base settings for the supplychain project.
Shared between local, cloud and test deployments.
"""

from pathlib import Path
import os

from django.urls import reverse_lazy

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv('SECRET_KEY', 'django-insecure-3k#v9m!q2t_8s$ledger-dev-only-key-0x7f1c')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv('DEBUG', 'True').lower() == 'true'

ALLOWED_HOSTS = os.getenv('ALLOWED_HOSTS', '*').split(',')


# Application definition
INSTALLED_APPS = [
    "unfold",
    "unfold.contrib.filters",
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'main',
    'stock',
    'corsheaders',
    'rest_framework',
    'drf_spectacular',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'supplychain.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'supplychain.wsgi.application'


# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]


# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.getenv('TIME_ZONE', 'UTC')
USE_I18N = True
USE_TZ = True


# Static files
STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'


# CORS
CORS_ALLOW_ALL_ORIGINS = True


# Default primary key field type
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# =============================================================================
# STOCK LEDGER
# =============================================================================
STOCK_LEDGER = {
    # Optimistic-concurrency retry for balance writes
    'RETRY_ATTEMPTS': int(os.getenv('LEDGER_RETRY_ATTEMPTS', '3')),
    'RETRY_BASE_DELAY': float(os.getenv('LEDGER_RETRY_BASE_DELAY', '0.05')),
    'RETRY_MAX_DELAY': float(os.getenv('LEDGER_RETRY_MAX_DELAY', '0.5')),

    # Invoices
    'TRADE_INVOICE_DUE_DAYS': int(os.getenv('TRADE_INVOICE_DUE_DAYS', '30')),

    # Validation
    'MIN_QUANTITY': os.getenv('LEDGER_MIN_QUANTITY', '0.01'),
    'MIN_PRICE': os.getenv('LEDGER_MIN_PRICE', '0.01'),
}


# Unfold Admin Configuration
UNFOLD = {
    "SITE_TITLE": "Supply Chain Admin",
    "SITE_HEADER": "Supply Chain",
    "SITE_URL": "/",
    "SITE_SYMBOL": "inventory",

    "SIDEBAR": {
        "show_search": True,
        "show_all_applications": True,
        "navigation": [
            {
                "title": "Trading",
                "separator": True,
                "items": [
                    {
                        "title": "Orders",
                        "icon": "shopping_cart",
                        "link": reverse_lazy("admin:stock_order_changelist"),
                    },
                    {
                        "title": "Transactions",
                        "icon": "swap_horiz",
                        "link": reverse_lazy("admin:stock_tradetransaction_changelist"),
                    },
                    {
                        "title": "Invoices",
                        "icon": "receipt_long",
                        "link": reverse_lazy("admin:stock_invoice_changelist"),
                    },
                ],
            },
            {
                "title": "Inventory",
                "separator": True,
                "items": [
                    {
                        "title": "Stock Balances",
                        "icon": "inventory_2",
                        "link": reverse_lazy("admin:stock_stockbalance_changelist"),
                    },
                    {
                        "title": "Products",
                        "icon": "category",
                        "link": reverse_lazy("admin:main_product_changelist"),
                    },
                ],
            },
            {
                "title": "Users & Access",
                "separator": True,
                "items": [
                    {
                        "title": "Users",
                        "icon": "people",
                        "link": reverse_lazy("admin:main_user_changelist"),
                    },
                ],
            },
        ],
    },
}

REST_FRAMEWORK = {
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',

    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
}


SPECTACULAR_SETTINGS = {
    'TITLE': 'Supply Chain Ledger',
    'DESCRIPTION': 'Stock ledger and order fulfillment API',
    'VERSION': '1.0.0',

    'COMPONENTS': {
        'securitySchemes': {
            'actorHeader': {
                'type': 'apiKey',
                'in': 'header',
                'name': 'X-User-Id',
            }
        }
    },
}
