from flask import jsonify

def error_response(message, status_code=400, **extra):
    """JSON error body in the API's common shape"""
    body = {'status': 'error', 'message': message}
    body.update(extra)
    return jsonify(body), status_code


def parse_int(value, default, minimum=None, maximum=None):
    """Parse a query-string integer, clamping it into [minimum, maximum]"""
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    if minimum is not None:
        number = max(minimum, number)
    if maximum is not None:
        number = min(maximum, number)
    return number
