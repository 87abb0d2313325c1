#!/usr/bin/env python3
"""
Simple startup script for the NLQ gateway web API
"""

import os
import sys

def check_requirements():
    """Check if required files exist."""
    required_files = [
        'app.py',
        'config.py',
        'gateway/__init__.py'
    ]

    missing_files = [path for path in required_files if not os.path.exists(path)]
    if missing_files:
        print("❌ Missing required files:")
        for file_path in missing_files:
            print(f"   - {file_path}")
        return False

    return True

def main():
    """Main startup function."""
    print("🚀 Starting NLQ gateway...")

    if not check_requirements():
        sys.exit(1)

    from app import app, get_chat_service
    from config import config

    if not config.validate():
        sys.exit(1)
    get_chat_service()

    print("✅ Application loaded successfully!")
    print(f"🌐 Listening on http://{config.server.host}:{config.server.port}")
    print("⏹️  Press Ctrl+C to stop the server")
    print("-" * 50)

    try:
        app.run(
            host=config.server.host,
            port=config.server.port,
            threaded=True,
            use_reloader=False  # Disable reloader to avoid duplicate processes
        )
    except KeyboardInterrupt:
        print("\n👋 Server stopped by user")

if __name__ == '__main__':
    main()
