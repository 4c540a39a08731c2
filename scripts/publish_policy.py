#!/usr/bin/env python3
"""
Publish a new policy version and make it current.

Usage:
    python -m scripts.publish_policy privacy_policy 2.0
    python -m scripts.publish_policy terms_of_service 2024-12-20 --list

Users who accepted an older version will be asked to review the policy again.
"""
import argparse
import asyncio
import sys

from consent_backend.app.core.constants import PolicyType
from consent_backend.app.core.database import async_session, engine
from consent_backend.app.services.policies import PolicyService, PolicyServiceError


async def publish(policy_type: PolicyType, version: str, show_list: bool) -> int:
    try:
        async with async_session() as session:
            service = PolicyService(session)
            try:
                row = await service.publish_version(policy_type, version)
            except PolicyServiceError as e:
                print(f"Error: {e.message}", file=sys.stderr)
                return 1
            print(f"Published {row.policy_type.value} {row.version} at {row.published_at.isoformat()}")

            if show_list:
                for v in await service.list_versions(policy_type):
                    marker = "*" if v.is_current else " "
                    print(f" {marker} {v.version}  {v.published_at.isoformat()}")
        return 0
    finally:
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Publish a policy version")
    parser.add_argument("policy_type", choices=[p.value for p in PolicyType])
    parser.add_argument("version")
    parser.add_argument("--list", action="store_true", help="print all versions afterwards")
    args = parser.parse_args()

    sys.exit(asyncio.run(publish(PolicyType(args.policy_type), args.version, args.list)))


if __name__ == "__main__":
    main()
