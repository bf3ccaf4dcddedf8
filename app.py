"""
Main application for the dispute portal adapters
"""
import socket
import sys
from dotenv import load_dotenv

from adapters.adapter_factory import is_supported, list_supported_types
from adapters.exceptions import DisputePortalError
from models.dispute import PortalType
from services.service_factory import ServiceFactory
from utils.logging_config import init_logging, get_logger, console_print
from utils.portal_config import configured_portals, load_api_settings

load_dotenv()

init_logging()
logger = get_logger('app')


def is_port_in_use(port: int, host: str = '127.0.0.1') -> bool:
    """
    Check if a port is already in use
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.settimeout(1)
            return sock.connect_ex((host, port)) == 0
    except OSError:
        return False


def start_api_server():
    """
    Start the FastAPI webhook ingress server
    """
    import uvicorn

    settings = load_api_settings()

    console_print("Starting Dispute Portal Webhook API Server", "SUCCESS")
    logger.info("Starting Dispute Portal Webhook API Server")

    if is_port_in_use(settings.port):
        console_print(f"API server is already running on port {settings.port}", "WARNING")
        logger.warning(f"API server is already running on port {settings.port}")
        return

    logger.info("Available endpoints:")
    logger.info("   GET  / - Health check")
    logger.info("   GET  /health - Detailed health check")
    logger.info("   GET  /portals - Supported portal types")
    logger.info("   GET  /portals/{portal_type}/health - Portal API health check")
    logger.info("   POST /webhooks/{portal_type} - Receive a portal webhook")

    if not settings.require_signature:
        logger.warning("WEBHOOK_REQUIRE_SIGNATURE is disabled; unsigned webhooks will be accepted")

    console_print(f"Server will start on: http://{settings.host}:{settings.port}", "SUCCESS")
    console_print(f"API Documentation: http://{settings.host}:{settings.port}/docs", "SUCCESS")
    logger.info(f"Server starting on: http://{settings.host}:{settings.port}")

    try:
        uvicorn.run(
            "api.main:app",
            host=settings.host,
            port=settings.port,
            log_level="info"
        )
    except Exception as e:
        logger.error(f"Error starting API server: {e}")
        console_print(f"Error starting API server: {e}", "ERROR")


def run_health_checks() -> bool:
    """
    Health check every portal configured in the environment

    Returns:
        True when every configured portal is reachable
    """
    portals = configured_portals()
    if not portals:
        console_print("No portals configured (set <PORTAL>_API_KEY)", "WARNING")
        return False

    all_healthy = True
    for portal_type in portals:
        try:
            adapter = ServiceFactory.get_adapter(portal_type)
        except DisputePortalError as e:
            console_print(f"{portal_type.value}: configuration error: {e.message}", "ERROR")
            all_healthy = False
            continue

        result = adapter.health_check()
        level = "SUCCESS" if result['healthy'] else "ERROR"
        console_print(f"{portal_type.value}: {result['message']} ({result['latency_ms']}ms)", level)
        all_healthy = all_healthy and result['healthy']

    return all_healthy


def pull_and_publish(portal: str, status: str = None) -> int:
    """
    Pull one page of disputes from a portal and publish them for case management

    Returns:
        Number of disputes published
    """
    if not is_supported(portal):
        console_print(f"Unsupported portal type: {portal} (supported: {', '.join(list_supported_types())})", "ERROR")
        return 0

    portal_type = PortalType(portal.upper())
    try:
        adapter = ServiceFactory.get_adapter(portal_type)
    except DisputePortalError as e:
        console_print(f"{portal_type.value}: configuration error: {e.message}", "ERROR")
        return 0
    if adapter is None:
        console_print(f"{portal_type.value} is not configured (set {portal_type.value}_API_KEY)", "ERROR")
        return 0

    publisher = ServiceFactory.get_event_publisher()

    try:
        result = adapter.fetch_disputes({'status': status} if status else {})
    except DisputePortalError as e:
        logger.error(f"❌ [{portal_type.value}] Failed to pull disputes: {e}")
        console_print(f"Failed to pull disputes from {portal_type.value}: {e.message}", "ERROR")
        return 0

    published = 0
    for dispute in result['disputes']:
        if publisher.publish_dispute(dispute, source='poll'):
            published += 1

    logger.info(f"📦 [{portal_type.value}] Published {published}/{len(result['disputes'])} disputes "
                f"(total on portal: {result['total_count']}, more: {result['has_more']})")
    console_print(f"Published {published} disputes from {portal_type.value}", "SUCCESS")
    return published


def print_usage():
    """
    Print usage information
    """
    console_print("Usage:", "INFO")
    console_print("  python app.py --api                      - Start FastAPI webhook server", "INFO")
    console_print("  python app.py --health                   - Health check configured portals", "INFO")
    console_print("  python app.py --pull <portal> [status]   - Pull disputes and publish them", "INFO")
    console_print("  python app.py --help                     - Show this help message", "INFO")


if __name__ == "__main__":
    if len(sys.argv) == 1 or sys.argv[1] in ['--help', '-h']:
        print_usage()
    elif sys.argv[1] in ['--api', '--server']:
        start_api_server()
    elif sys.argv[1] == '--health':
        sys.exit(0 if run_health_checks() else 1)
    elif sys.argv[1] == '--pull' and len(sys.argv) > 2:
        pull_and_publish(sys.argv[2], sys.argv[3] if len(sys.argv) > 3 else None)
    else:
        print_usage()
        sys.exit(2)
