"""AWS Lambda handler serving ICS calendar feeds as a JSON agenda."""
import json
import logging
import os
import time
from typing import Any, Dict, Optional

from auth.api_key import ApiKeyValidator, AuthenticationError, ConfigurationError
from feed.ics_feed import (
    FeedHTTPError,
    IcsFeedFetcher,
    InvalidFeedUrlError,
    normalize_feed_url,
    validate_feed_url,
)
from processor.agenda_builder import START_FROM_NOW, build_agenda, calendar_source


CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*'
}

PREFLIGHT_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Headers': 'X-API-Key',
    'Access-Control-Allow-Methods': 'GET, OPTIONS'
}

# LogRecord attributes that are not user-supplied ``extra`` fields
_RESERVED_LOG_ATTRS = set(vars(logging.makeLogRecord({}))) | {'message', 'asctime'}


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including any ``extra`` fields."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_LOG_ATTRS and not key.startswith('_'):
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def json_response(
    status_code: int,
    body: Optional[Dict[str, Any]],
    headers: Optional[Dict[str, str]] = None
) -> Dict[str, Any]:
    """
    Build an API Gateway proxy response.

    Args:
        status_code: HTTP status code
        body: JSON-serialisable body, or None for an empty body
        headers: CORS headers to send (defaults to CORS_HEADERS)

    Returns:
        Response dict with statusCode, headers and body
    """
    response_headers = dict(headers or CORS_HEADERS)
    if body is not None:
        response_headers['Content-Type'] = 'application/json'
    return {
        'statusCode': status_code,
        'headers': response_headers,
        'body': json.dumps(body) if body is not None else ''
    }


def parse_days(value: Optional[str], default: int) -> int:
    """
    Parse the days query parameter.

    Args:
        value: Raw parameter value
        default: Days used when the value is missing or not positive

    Returns:
        Positive number of days
    """
    try:
        days = int(value)
    except (TypeError, ValueError):
        return default
    return days if days > 0 else default


def _request_method(event: Dict[str, Any]) -> str:
    """HTTP method from a REST (v1) or HTTP API (v2) proxy event."""
    method = event.get('httpMethod')
    if not method:
        method = event.get('requestContext', {}).get('http', {}).get('method', 'GET')
    return method.upper()


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for the calendar agenda API.

    Query parameters: url (required), days, timezone, startFrom, key.

    Args:
        event: API Gateway proxy event
        context: Lambda context object

    Returns:
        API Gateway proxy response
    """
    # Read configuration from environment variables
    master_key = os.environ.get('MASTER_KEY')
    environment = os.environ.get('ENVIRONMENT') or os.environ.get('NODE_ENV', '')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    timeout_seconds = int(os.environ.get('TIMEOUT_SECONDS', '30'))
    default_days = int(os.environ.get('DEFAULT_DAYS', '7'))
    default_timezone = os.environ.get('DEFAULT_TIMEZONE', 'UTC')

    # Initialize logging
    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    method = _request_method(event)
    params = event.get('queryStringParameters') or {}
    headers = {
        name.lower(): value for name, value in (event.get('headers') or {}).items()
    }

    logger.info("Request received", extra={'method': method})

    # CORS preflight carries no credentials
    if method == 'OPTIONS':
        return json_response(200, None, PREFLIGHT_HEADERS)

    try:
        validator = ApiKeyValidator(
            master_key=master_key,
            development=environment.lower() == 'development'
        )
        api_key = headers.get('x-api-key')
        logger.info(f"API key from header: {'Present' if api_key else 'Missing'}")

        try:
            validator.validate(api_key or params.get('key'))
        except AuthenticationError as e:
            logger.warning(f"Validation error: {e}")
            return json_response(
                e.status_code,
                {'error': str(e), 'details': 'Authentication failed'},
                PREFLIGHT_HEADERS
            )
        except ConfigurationError as e:
            logger.error(f"Validation error: {e}")
            return json_response(500, {'error': str(e), 'details': 'Authentication failed'})

        feed_url = params.get('url')
        if not feed_url:
            return json_response(400, {'error': 'Missing url parameter'})

        feed_url = normalize_feed_url(feed_url)
        try:
            validate_feed_url(feed_url)
        except InvalidFeedUrlError as e:
            return json_response(400, {'error': str(e)})

        days = parse_days(params.get('days'), default_days)
        timezone_name = params.get('timezone') or default_timezone
        start_from = params.get('startFrom') or START_FROM_NOW
        calendar = calendar_source(feed_url)

        fetcher = IcsFeedFetcher(timeout=timeout_seconds)
        try:
            feed_text = fetcher.fetch(feed_url)
        except FeedHTTPError as e:
            logger.error(
                f"HTTP error! status: {e.status_code}, statusText: {e.reason}",
                extra={'calendar': calendar}
            )
            return json_response(e.status_code, {
                'error': 'Failed to fetch calendar',
                'status': e.status_code,
                'statusText': e.reason,
                'details': e.body
            })
        except Exception as e:
            logger.error(
                f"Failed to fetch calendar after retries: {str(e)}",
                extra={'calendar': calendar, 'error_type': type(e).__name__},
                exc_info=True
            )
            return json_response(500, {
                'error': 'Failed to fetch calendar',
                'message': str(e),
                'calendar': calendar
            })

        result = build_agenda(
            feed_text,
            days=days,
            timezone_name=timezone_name,
            start_from=start_from,
            source_url=feed_url
        )

        duration = time.time() - start_time
        logger.info(
            "Request completed successfully",
            extra={
                'calendar': calendar,
                'days': days,
                'timezone': result.timezone,
                'agenda_days': len(result.agenda),
                'duration_seconds': round(duration, 2)
            }
        )

        return json_response(200, result.to_dict())

    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Request failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return json_response(500, {
            'error': 'Internal server error',
            'message': str(e)
        })
