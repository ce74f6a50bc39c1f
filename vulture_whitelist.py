# Vulture whitelist file
# This file contains false positives that vulture incorrectly flags as dead code.
# These are typically framework-registered functions, Pydantic fields, pytest fixtures, etc.
#
# Usage: python3 -m vulture server vulture_whitelist.py

# =============================================================================
# FastAPI Route Handlers (registered via @router.get/post decorators)
# =============================================================================
# These functions are called by FastAPI when matching HTTP requests arrive.
# Vulture cannot see this because the registration happens via decorators.

health_check  # routes.py - GET /healthz
readiness_check  # routes.py - GET /readyz
submit_install_os_job  # routes.py - POST /api/v1/jobs/install-os
submit_ipmi_command_job  # routes.py - POST /api/v1/jobs/ipmi-command
submit_ipmi_catalog_job  # routes.py - POST /api/v1/jobs/ipmi-catalog
list_jobs  # routes.py - GET /api/v1/jobs
get_job  # routes.py - GET /api/v1/jobs/{job_id}
get_profile  # routes.py - GET /api/v1/profiles
render_template  # routes.py - GET /api/v1/templates/{name}
register_node  # routes.py - POST /api/v1/nodes
list_catalogs  # routes.py - GET /api/v1/nodes/{node_id}/catalogs
register_lease  # routes.py - POST /api/v1/leases

# =============================================================================
# FastAPI Middleware (registered via @app.middleware decorator)
# =============================================================================
node_response_middleware  # main.py - audit logging and node response events

# =============================================================================
# Console Script Entry Point (declared in pyproject.toml)
# =============================================================================
main  # main.py - metal-provisioner console script

# =============================================================================
# Pydantic Model Fields (accessed via JSON serialization/deserialization)
# =============================================================================
# These are schema fields that API clients read/write via JSON.
# Vulture sees them as unused class variables.

_.started_at  # Job model field
_.completed_at  # Job model field
_.timestamp  # HealthResponse model field
_.method  # HttpResponseEvent model field
_.ipAddr  # IpConfigSchema field
_.gateway  # IpConfigSchema field
_.netmask  # IpConfigSchema field
_.ipv4  # NetworkDeviceSchema field
_.ipv6  # NetworkDeviceSchema field
_.uid  # UserAccountSchema field
_.sshKey  # UserAccountSchema field
_.networkDevices  # InstallOptionsSchema field

# =============================================================================
# Pydantic model_config (ConfigDict for Pydantic v2 configuration)
# =============================================================================
_.model_config  # Pydantic V2 configuration attribute

# =============================================================================
# Pydantic Config class attributes
# =============================================================================
Config  # config.py - Pydantic settings class
_.env_file  # Pydantic settings configuration
_.case_sensitive  # Pydantic settings configuration

# =============================================================================
# Pytest Fixtures (discovered by pytest at runtime by name)
# =============================================================================
anyio_backend  # pytest-anyio fixture for async test backend configuration
restore_config_validation  # pytest fixture for restoring config validation state

# =============================================================================
# unittest TestCase Methods (called by test framework lifecycle)
# =============================================================================
_.setUp  # unittest.TestCase setup method
_.asyncSetUp  # unittest.IsolatedAsyncioTestCase async setup method
_.asyncTearDown  # unittest.IsolatedAsyncioTestCase async teardown method

# =============================================================================
# unittest.mock Magic Attributes (used to configure mock behavior)
# =============================================================================
_.return_value  # Mock return value configuration
_.side_effect  # Mock side effect configuration

# =============================================================================
# Test Variables (used in unpacking or assertions)
# =============================================================================
IMPORT_ERROR  # Test import error tracking
pytestmark  # pytest marker for test modules
_.wired  # TestClient attribute carrying the patched services

# =============================================================================
# Public API Methods (may be used externally or for future features)
# =============================================================================
verify_password  # install_options.py - checks a plaintext against a crypt digest
