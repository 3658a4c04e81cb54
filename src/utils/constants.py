"""
Constants for the Product Composition service.

This module defines all system-wide constants including:
- Application metadata
- Composition defaults and validation limits
- Database and logging names
"""

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "Product Composition"
APP_VERSION = "0.1.0"
DATABASE_VERSION = "1.0"

# Prefix for environment variables read by Config
ENV_PREFIX = "PRODUCT_COMPOSITION"

# ============================================================================
# Composition Defaults
# ============================================================================

DEFAULT_COMPONENT_QUANTITY = 1
MIN_COMPONENT_QUANTITY = 1

# ============================================================================
# Validation Constants
# ============================================================================

MAX_TENANT_ID_LENGTH = 64
MAX_NAME_LENGTH = 200
MAX_GTIN_LENGTH = 14
MAX_CATEGORY_LENGTH = 100

# ============================================================================
# Database Constants
# ============================================================================

DATABASE_FILENAME = "product_composition.db"

TABLE_PRODUCT = "products"
TABLE_PRODUCT_COMPONENT = "product_components"

# Constraint names, used to classify integrity violations
UQ_COMPONENT_PER_PARENT = "uq_product_component_tenant_parent_component"
CK_NO_SELF_REFERENCE = "ck_product_component_no_self_reference"

# ============================================================================
# Logging
# ============================================================================

SERVICE_LOGGER_PREFIX = "product_composition.services"
