#!/usr/bin/env python3
"""
Configuration Validation Script
Validates that the environment variables the backend reads are set correctly
"""
import os
import sys
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _positive_int(name: str, default: str, errors: list):
    raw = os.getenv(name, default)
    try:
        value = int(raw)
    except ValueError:
        errors.append(f"{name} must be an integer. Got: {raw}")
        return
    if value < 1:
        errors.append(f"{name} must be at least 1. Got: {value}")
    else:
        print(f"{name}: {value}")


def validate_config():
    """Validate configuration"""
    print("Validating configuration...\n")

    errors = []
    warnings = []

    database_url = os.getenv('DATABASE_URL', 'sqlite:///./xcel_dashboard.db')
    print(f"DATABASE_URL: {database_url.split('@')[-1]}")

    # Check upload directory
    upload_dir = Path(os.getenv('UPLOAD_DIR', './data/uploads'))
    if not upload_dir.exists():
        warnings.append(f"Upload directory {upload_dir} does not exist; will be created on start.")
    elif not os.access(upload_dir, os.W_OK):
        errors.append(f"Upload directory {upload_dir} is not writable")
    else:
        print("Upload directory is writable")

    _positive_int('MAX_UPLOAD_MB', '10', errors)
    _positive_int('MAX_DISPLAYED_KPIS', '4', errors)
    _positive_int('MAX_DISPLAYED_CHARTS', '2', errors)

    ai_provider = os.getenv('AI_PROVIDER', 'openai')
    print("AI_PROVIDER:", ai_provider)

    if ai_provider == 'openai':
        api_key = os.getenv('OPENAI_API_KEY')
        if not api_key or api_key == 'your-openai-api-key':
            warnings.append("OPENAI_API_KEY not set (AI features disabled)")
        else:
            print("OPENAI_API_KEY is set")
    elif ai_provider == 'azure':
        for name in ('AZURE_OPENAI_ENDPOINT', 'AZURE_OPENAI_KEY', 'AZURE_OPENAI_DEPLOYMENT'):
            if not os.getenv(name):
                warnings.append(f"{name} not set (AI features disabled)")
            else:
                print(f"{name} is set")
    elif ai_provider == 'none':
        warnings.append("AI_PROVIDER is 'none' (AI features disabled)")
    else:
        errors.append(f"AI_PROVIDER must be openai, azure or none. Got: {ai_provider}")

    print("\n" + "="*60)
    if warnings:
        print("\nWARNINGS:")
        for w in warnings:
            print(" ", w)
    if errors:
        print("\nERRORS:")
        for e in errors:
            print(" ", e)
        print("\nValidation failed. Fix errors above.\n")
        return False
    print("\nValidation passed.\n")
    return True


if __name__ == "__main__":
    success = validate_config()
    sys.exit(0 if success else 1)
