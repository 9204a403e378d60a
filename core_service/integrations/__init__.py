"""core_service.integrations — External service gateway modules.

All outbound HTTP calls to collaborating services go through the gateway
singletons defined here. Direct `requests` calls in services or blueprints
are not allowed.

    file_service.file_service_gateway       lock uploaded files
    user_directory.user_directory_gateway   resolve owner mail + language
"""
