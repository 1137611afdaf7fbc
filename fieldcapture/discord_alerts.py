"""
Discord webhook integration for alerts and notifications
"""
from datetime import datetime, timezone

import requests

from .errors import REMEDIATION_CHECKLIST
from .logger import app_logger
from app_config import APP_DISPLAY_NAME, get_user_agent


class DiscordAlerts:
    """Handles Discord webhook notifications"""

    def __init__(self, config):
        self.config = config
        self.last_send_status = ""
        self.last_send_time = None

    def is_enabled(self):
        """Check if Discord alerts are enabled"""
        discord_config = self.config.get('discord', {})
        return discord_config.get('enabled', False) and discord_config.get('webhook_url', '')

    def get_color_int(self):
        """Convert hex color to Discord integer format"""
        discord_config = self.config.get('discord', {})
        hex_color = discord_config.get('embed_color_hex', '#0EA5E9')

        try:
            return int(hex_color.lstrip('#'), 16)
        except (ValueError, AttributeError):
            app_logger.warning(f"Invalid Discord embed color: {hex_color}, using default")
            return int('0EA5E9', 16)

    def send_discord_message(self, title, description, level="info"):
        """
        Send a message to Discord webhook

        Args:
            title: Embed title
            description: Embed description/content
            level: Message level (info, warning, error, success)
        """
        if not self.is_enabled():
            return False

        discord_config = self.config.get('discord', {})
        webhook_url = discord_config.get('webhook_url', '')

        try:
            username = discord_config.get('username_override', '') or APP_DISPLAY_NAME
            avatar_url = discord_config.get('avatar_url', '')

            embed = {
                "title": title,
                "description": description,
                "color": self.get_color_int(),
                "timestamp": datetime.now(timezone.utc).isoformat()
            }

            level_emoji = {
                'info': 'ℹ️',
                'warning': '⚠️',
                'error': '❌',
                'success': '✅'
            }
            embed["footer"] = {
                "text": f"{level_emoji.get(level, 'ℹ️')} {level.upper()}"
            }

            payload = {
                "username": username,
                "embeds": [embed]
            }

            if avatar_url:
                payload["avatar_url"] = avatar_url

            response = requests.post(
                webhook_url,
                json=payload,
                headers={"User-Agent": get_user_agent()},
                timeout=10
            )

            if response.status_code in [200, 204]:
                self.last_send_time = datetime.now()
                self.last_send_status = f"Success (HTTP {response.status_code})"
                app_logger.debug(f"Discord alert sent: {title}")
                return True
            else:
                error_msg = f"HTTP {response.status_code} - {response.text[:100]}"
                self.last_send_status = f"Failed: {error_msg}"
                app_logger.error(f"Discord webhook failed: {error_msg}")
                return False

        except requests.exceptions.Timeout:
            self.last_send_status = "Failed: Request timeout"
            app_logger.error("Discord webhook timeout")
            return False

        except requests.exceptions.ConnectionError as e:
            self.last_send_status = "Failed: Connection error"
            app_logger.error(f"Discord webhook connection error: {e}")
            return False

        except Exception as e:
            self.last_send_status = f"Failed: {str(e)[:50]}"
            app_logger.error(f"Discord webhook error: {e}")
            return False

    def send_startup_message(self):
        """Send service startup notification"""
        discord_config = self.config.get('discord', {})

        if not discord_config.get('post_startup_shutdown', False):
            return False

        description = f"""**Site:** {self.config.get('site_name', 'Unknown')}
**Started:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}
**Operating hours:** {self.config.get('start_hour')}:00 - {self.config.get('end_hour')}:00
**Bursts:** {self.config.get('frames_per_sequence')} frames every {self.config.get('sequence_interval_minutes')} min

Camera session ready."""

        return self.send_discord_message(
            f"🚀 {APP_DISPLAY_NAME} Started",
            description,
            level="success"
        )

    def send_shutdown_message(self, summary=""):
        """Send service shutdown notification"""
        discord_config = self.config.get('discord', {})

        if not discord_config.get('post_startup_shutdown', False):
            return False

        description = f"""**Site:** {self.config.get('site_name', 'Unknown')}
**Stopped:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}

{summary or 'Service has been stopped.'}"""

        return self.send_discord_message(
            f"🛑 {APP_DISPLAY_NAME} Stopped",
            description,
            level="info"
        )

    def send_error_message(self, error_text):
        """Send error notification"""
        discord_config = self.config.get('discord', {})

        if not discord_config.get('post_errors', False):
            return False

        # Truncate very long error messages
        if len(error_text) > 1000:
            error_text = error_text[:1000] + "..."

        description = f"""**Time:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}

```
{error_text}
```"""

        return self.send_discord_message(
            "❌ Error Detected",
            description,
            level="error"
        )

    def send_initialization_failure(self, attempts):
        """Camera could not be acquired; the service is exiting"""
        discord_config = self.config.get('discord', {})

        if not discord_config.get('post_errors', False):
            return False

        checklist = "\n".join(f"{i}. {item}" for i, item in enumerate(REMEDIATION_CHECKLIST, 1))
        description = f"""**Site:** {self.config.get('site_name', 'Unknown')}
**Attempts:** {attempts}

Camera could not be initialized, service stopped. Check:
{checklist}"""

        return self.send_discord_message(
            "❌ Camera Unavailable",
            description,
            level="error"
        )

    def send_sequence_summary(self, result, downloaded=0):
        """Per-burst summary (frames completed / attempted, files retrieved)"""
        discord_config = self.config.get('discord', {})

        if not discord_config.get('post_sequence_summary', False):
            return False

        started = result.session_time.strftime('%Y-%m-%d %H:%M:%S') if result.session_time else 'unknown'
        description = f"""**Site:** {self.config.get('site_name', 'Unknown')}
**Started:** {started}
**Frames:** {result.completed}/{result.attempted} captured
**Downloaded in final sweep:** {downloaded}"""
        if result.aborted:
            description += "\n\nBurst stopped early (shutdown)."

        if result.completed == 0:
            level = "error"
        elif result.completed < result.attempted or result.aborted:
            level = "warning"
        else:
            level = "success"

        return self.send_discord_message(
            "📸 Burst Complete",
            description,
            level=level
        )

    def get_last_status(self):
        """Get formatted last send status"""
        if self.last_send_time:
            time_str = self.last_send_time.strftime('%H:%M:%S')
            return f"Last message: {time_str} - {self.last_send_status}"
        else:
            return "No messages sent yet"
