"""
Interactive Firebase setup.

Prompts for the web client config (JSON or the JS snippet from the console)
and the service-account JSON, then writes them to the environment file.
Both may be pasted over several lines; reading stops at the closing brace.
"""
import sys

from src.setup.service import FirebaseSetupService, collect_object, parse_service_account, parse_web_config
from src.shared.exceptions import ContractOSError


def pasted_lines(prompt: str):
    print(prompt)
    while True:
        try:
            yield input()
        except EOFError:
            return


def main() -> int:
    print("\nFirebase setup for ContractOS\n")
    service = FirebaseSetupService()

    try:
        web_config = parse_web_config(collect_object(pasted_lines("1. Paste the firebaseConfig object (or the whole JSON):")))
        service_account = parse_service_account(collect_object(pasted_lines("\n2. Paste the service account JSON:")))
        path = service.save(web_config, service_account, force="--force" in sys.argv)
    except ContractOSError as e:
        print(f"\nSetup failed: {e}")
        return 1

    print(f"\n{path} written. Restart the API to enable the document store.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
