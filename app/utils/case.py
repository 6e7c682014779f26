import re

_SNAKE_SEGMENT = re.compile(r"_([a-z])")


def snake_to_camel(key: str) -> str:
    return _SNAKE_SEGMENT.sub(lambda match: match.group(1).upper(), key)


def camelize(obj):
    """Recursively convert dict keys from snake_case to camelCase."""
    if isinstance(obj, list):
        return [camelize(item) for item in obj]
    if isinstance(obj, dict):
        return {snake_to_camel(str(key)): camelize(value) for key, value in obj.items()}
    return obj
