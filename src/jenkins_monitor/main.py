import asyncio
import sys

from jenkins_monitor.configs.settings import load_config
from jenkins_monitor.errors import ConfigError
from jenkins_monitor.scheduler.service import MonitorService
from jenkins_monitor.scheduler.signal_handlers import install_signal_handlers
from jenkins_monitor.utils.logger_factory import log_exception

async def main(config_path=None):
    config = load_config(config_path)
    service = MonitorService(config)
    stop_event = asyncio.Event()

    try:
        await service.startup()
        install_signal_handlers(service, asyncio.get_running_loop(), stop_event)
        await stop_event.wait()
    except Exception as e:
        log_exception(service.logger, e, context="bootstrap")
        raise
    finally:
        try:
            await service.shutdown()
        except Exception as e:
            log_exception(service.logger, e, context="main_final_shutdown")

def run():
    config_path = sys.argv[1] if len(sys.argv) > 1 else None
    try:
        asyncio.run(main(config_path))
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

if __name__ == "__main__":
    run()
