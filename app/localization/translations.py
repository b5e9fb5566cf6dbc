"""Translated message catalogue."""

TRANSLATIONS = {
    "en": {
        "errors.resource_not_found": "Resource not found",
        "errors.not_authenticated": "Not authenticated",
        "errors.permission_denied": "Permission denied",
        "errors.validation_error": "Validation error",
        "errors.resource_conflict": "Resource conflict",
        "errors.invalid_credentials": "Could not validate credentials",
        "errors.incorrect_login": "Incorrect email or password",
        "errors.user_inactive": "User is inactive",
        "errors.permission_required": "Permission required: {permission}",
        "errors.user_not_found": "User not found",
        "errors.user_exists": "User with this email already exists",
        "errors.case_not_found": "Case not found",
        "errors.case_exists": "Case with this number already exists",
        "errors.todo_not_found": "TODO not found",
        "audit.log_not_found": "Audit log not found",
        "audit.view_denied": "You are not allowed to view audit logs",
        "audit.log_view_denied": "You are not allowed to view this audit log",
        "audit.export_denied": "You are not allowed to export audit logs",
        "audit.admin_denied": "You are not allowed to administer audit logs",
        "audit.retention_out_of_bounds": "Days to keep must be between {minimum} and {maximum}",
        "audit.statistics_out_of_bounds": "Days must be between 1 and {maximum}",
        "audit.field_required": "{field} is required",
        "audit.field_too_long": "{field} is too long (maximum {maximum} characters)",
        "audit.invalid_action": "Invalid audit action: {action}",
    },
    "es": {
        "errors.resource_not_found": "Recurso no encontrado",
        "errors.not_authenticated": "No autenticado",
        "errors.permission_denied": "Permiso denegado",
        "errors.validation_error": "Error de validación",
        "errors.resource_conflict": "Conflicto de recursos",
        "errors.invalid_credentials": "No se pudieron validar las credenciales",
        "errors.incorrect_login": "Email o contraseña incorrectos",
        "errors.user_inactive": "El usuario está inactivo",
        "errors.permission_required": "Permiso requerido: {permission}",
        "errors.user_not_found": "Usuario no encontrado",
        "errors.user_exists": "Ya existe un usuario con este email",
        "errors.case_not_found": "Caso no encontrado",
        "errors.case_exists": "Ya existe un caso con este número",
        "errors.todo_not_found": "TODO no encontrado",
        "audit.log_not_found": "Log de auditoría no encontrado",
        "audit.view_denied": "No tienes permisos para ver logs de auditoría",
        "audit.log_view_denied": "No tienes permisos para ver este log de auditoría",
        "audit.export_denied": "No tienes permisos para exportar logs de auditoría",
        "audit.admin_denied": "No tienes permisos para administrar logs de auditoría",
        "audit.retention_out_of_bounds": "Los días a conservar deben estar entre {minimum} y {maximum}",
        "audit.statistics_out_of_bounds": "El número de días debe estar entre 1 y {maximum}",
        "audit.field_required": "{field} es requerido",
        "audit.field_too_long": "{field} es demasiado largo (máximo {maximum} caracteres)",
        "audit.invalid_action": "Acción de auditoría no válida: {action}",
    },
}
