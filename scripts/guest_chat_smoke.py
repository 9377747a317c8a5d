"""
Smoke script for the guest chat engine against a running API.

Tests:
1. Guest session bootstrap (or restore from local storage)
2. Sending a message and receiving a reply
3. Auto-derived title on the first message
4. Optional batch upload of a local file (pass a path as the first argument)

Usage:
    GUESTCHAT_API_BASE_URL=http://localhost:8080/api python scripts/guest_chat_smoke.py [file]
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from guestchat.client import GuestChatClient
from guestchat.core.config import settings
from guestchat.core.errors import BatchUploadError, GuestChatError
from guestchat.core.logging import setup_logging
from guestchat.models.upload import FileCategory, LocalFile
from guestchat.utils.chat_titles import get_display_chat_title


async def test_guest_chat(upload_path=None):
    """Run a full guest exchange against the configured API."""
    print("=" * 70)
    print("GUEST CHAT SMOKE TEST")
    print(f"API: {settings.api_base_url}")
    print("=" * 70)

    async with GuestChatClient() as client:
        print("\n--- TEST 1: Session ---")
        if client.session is None:
            print("  [ERROR] Session initialization degraded; is the API reachable?")
            return False
        print(f"  [OK] Session: {client.session.session_id}")
        print(f"  [OK] Chats: {len(client.chat_list)}")
        for chat in client.chat_list[:5]:
            print(f"    - {chat.id}: {get_display_chat_title(chat.title)}")

        if upload_path:
            print("\n--- TEST 2a: Batch upload ---")
            try:
                result = await client.upload_files(
                    [LocalFile.from_path(upload_path)],
                    FileCategory.GENERAL,
                    on_progress=lambda job: print(f"  progress {job.progress_percentage:.0f}%"),
                )
                print(f"  [OK] {result.state.value}: {[f.filename for f in result.files]}")
                for failed in result.failed_files + result.rejected:
                    print(f"  [WARN] {failed.filename}: {failed.error}")
            except (BatchUploadError, GuestChatError) as e:
                print(f"  [ERROR] Upload failed: {e}")

        print("\n--- TEST 2: Send message ---")
        await client.create_new_chat()
        result = await client.send_message("What should I eat after a workout")
        status = "[OK]" if result.success else "[ERROR]"
        print(f"  {status} Reply: {result.reply.content[:120]}")

        print("\n--- TEST 3: Title ---")
        print(f"  Derived title: {result.title}")
        print(f"  Selected chat: {get_display_chat_title(client.selected_chat.title)}")

        return result.success


if __name__ == "__main__":
    setup_logging()
    path = sys.argv[1] if len(sys.argv) > 1 else None
    ok = asyncio.run(test_guest_chat(path))
    print("\n" + ("All checks passed" if ok else "Smoke test FAILED"))
    sys.exit(0 if ok else 1)
