"""
Validation of incoming chat requests.

Checks the JSON body accepted by the relay endpoint and returns a
normalized copy containing only the fields forwarded upstream.
"""

from typing import Any, Dict, List

VALID_ROLES = ("user", "assistant", "system")


class ValidationError(Exception):
    """Raised when a chat request fails validation."""
    pass


def validate_chat_message(value: Any, index: int) -> Dict[str, Any]:
    """
    Validate a single ``{role, content, images?}`` entry.

    Raises:
        ValidationError: If validation fails
    """
    if not isinstance(value, dict):
        raise ValidationError(f"messages[{index}] must be an object")

    role = value.get('role')
    if role not in VALID_ROLES:
        raise ValidationError(
            f"messages[{index}].role must be one of {', '.join(VALID_ROLES)}, got {role!r}"
        )

    content = value.get('content')
    if not isinstance(content, str):
        raise ValidationError(f"messages[{index}].content must be a string")

    message = {'role': role, 'content': content}

    images = value.get('images')
    if images is not None:
        if not isinstance(images, list) or not all(isinstance(i, str) for i in images):
            raise ValidationError(f"messages[{index}].images must be a list of strings")
        message['images'] = images

    return message


def validate_chat_request(body: Any) -> Dict[str, Any]:
    """
    Validate a chat request body.

    Args:
        body: Decoded JSON body

    Returns:
        Dict with ``model``, ``messages`` and, when given, ``options``

    Raises:
        ValidationError: If validation fails
    """
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")

    model = body.get('model')
    if not isinstance(model, str) or not model.strip():
        raise ValidationError("model must be a non-empty string")

    messages = body.get('messages')
    if not isinstance(messages, list):
        raise ValidationError("messages must be a list")

    validated: List[Dict[str, Any]] = [
        validate_chat_message(message, i) for i, message in enumerate(messages)
    ]

    request = {'model': model, 'messages': validated}

    options = body.get('options')
    if options is not None:
        if not isinstance(options, dict):
            raise ValidationError("options must be an object")
        request['options'] = options

    return request
