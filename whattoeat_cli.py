#!/usr/bin/env python3
"""
WhatToEat - can't decide what to eat? Let the server pick.
Terminal front-end for the WhatToEat service: keep a list of dishes from your
favourite restaurants, have one picked at random, and look back at what you
ate before.
"""

import argparse
import getpass
import json
import logging
import os
import sys
from collections import OrderedDict
from concurrent.futures import Future
from typing import Dict, List, Optional

from colorama import Fore, Style, init
from dotenv import load_dotenv

from whattoeat.models import Anonymous, Authenticated, Guest
from whattoeat.repositories import ConfigStore
from whattoeat.services import (
    DecisionController, RemoteGateway, SessionController, SettingsController, Transport,
)
from whattoeat.services.gateway import DEFAULT_HEALTH_TIMEOUT
from whattoeat.services.transport import DEFAULT_TIMEOUT

# Initialize colorama for cross-platform colored terminal output
init(autoreset=True)

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def setup_logging(level: str = 'WARNING') -> logging.Logger:
    """Configure the root WhatToEat logger.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to WARNING so normal use is quiet.

    Returns:
        Configured logger instance.
    """
    numeric = getattr(logging, str(level).upper(), logging.WARNING)
    logger = logging.getLogger('whattoeat')
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('[%(levelname)s] %(name)s: %(message)s'))
        logger.addHandler(handler)
    logger.setLevel(numeric)
    return logger


logger = setup_logging()

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEFAULT_CONFIG: Dict = {
    'log_level': 'WARNING',
    'api_timeout_seconds': DEFAULT_TIMEOUT,
    'health_timeout_seconds': DEFAULT_HEALTH_TIMEOUT,
    'settings_file': ConfigStore.DEFAULT_FILE,
}


def load_config(config_path: str) -> Dict:
    """Load configuration from a JSON file with environment variable support.

    The file is optional; missing keys keep their defaults.  Environment
    variables take precedence over config file values:

    - WHATTOEAT_LOG_LEVEL overrides log_level
    - WHATTOEAT_SETTINGS_FILE overrides settings_file
    - WHATTOEAT_API_TIMEOUT overrides api_timeout_seconds

    The server address is not read from here on purpose: it only changes
    through the validated settings workflow.
    """
    config = dict(DEFAULT_CONFIG)

    if os.path.exists(config_path):
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                loaded = json.load(f)
        except json.JSONDecodeError as e:
            print(f"{Fore.RED}Error parsing config file: {e}")
            sys.exit(1)
        if not isinstance(loaded, dict):
            print(f"{Fore.RED}Error: config file '{config_path}' must contain a JSON object")
            sys.exit(1)
        for key, value in loaded.items():
            if key in DEFAULT_CONFIG:
                config[key] = value
            else:
                logger.warning("Ignoring unknown config key '%s'", key)
    else:
        logger.debug("No config file at %s, using defaults", config_path)

    if os.getenv('WHATTOEAT_LOG_LEVEL'):
        config['log_level'] = os.getenv('WHATTOEAT_LOG_LEVEL')
    if os.getenv('WHATTOEAT_SETTINGS_FILE'):
        config['settings_file'] = os.getenv('WHATTOEAT_SETTINGS_FILE')
    if os.getenv('WHATTOEAT_API_TIMEOUT'):
        config['api_timeout_seconds'] = os.getenv('WHATTOEAT_API_TIMEOUT')

    for key in ('api_timeout_seconds', 'health_timeout_seconds'):
        try:
            config[key] = float(config[key])
        except (TypeError, ValueError):
            print(f"{Fore.RED}Error: '{key}' must be a number of seconds")
            sys.exit(1)
        if config[key] <= 0:
            print(f"{Fore.RED}Error: '{key}' must be positive")
            sys.exit(1)

    return config


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

class WhatToEatClient:
    """Creates the store, transport, gateway and controllers once.

    Front-ends talk to the three controllers (``session``, ``home`` and
    ``settings``) and render their ``state``.
    """

    def __init__(self, config: Dict) -> None:
        self.config = config
        self.store = ConfigStore(config['settings_file'])
        self.transport = Transport(self.store, timeout=config['api_timeout_seconds'])
        self.gateway = RemoteGateway(self.transport,
                                     health_timeout=config['health_timeout_seconds'])
        self.session = SessionController(self.gateway, self.store)
        self.home = DecisionController(self.gateway)
        self.settings = SettingsController(self.gateway, self.store)

    def start(self) -> bool:
        """Resolve the launch session, signing in as a guest when needed.

        Returns:
            ``True`` when the session is authenticated afterwards.
        """
        state = self.session.check()
        if not isinstance(state, Authenticated):
            self.session.auto_guest_login().result()
        return self.session.is_authenticated

    def close(self) -> None:
        for controller in (self.session, self.home, self.settings):
            controller.shutdown()
        self.transport.session.close()


# ---------------------------------------------------------------------------
# Presentation helpers
# ---------------------------------------------------------------------------

def _wait(future: Optional[Future]):
    return future.result() if future is not None else None


def _report(error: Optional[str]) -> bool:
    """Print *error* if there is one; return True when there was none."""
    if error:
        print(f"{Fore.RED}{error}")
        return False
    return True


def describe_session(client: WhatToEatClient) -> str:
    session = client.session.session
    if isinstance(session, Authenticated):
        return f"Signed in as {session.username} (id {session.user_id})"
    if isinstance(session, (Guest, Anonymous)):
        return "Not signed in"
    return "Session not checked yet"


def show_menus(client: WhatToEatClient) -> None:
    menus = client.home.state.menus
    if not menus:
        print(f"{Fore.YELLOW}No menus yet. Add one first!")
        return
    grouped: "OrderedDict[str, List]" = OrderedDict()
    for menu in menus:
        name = menu.restaurant.name if menu.restaurant else 'Unknown'
        grouped.setdefault(name, []).append(menu)
    for name, items in grouped.items():
        print(f"{Fore.CYAN}{Style.BRIGHT}{name}")
        for menu in items:
            print(f"  {Fore.YELLOW}[{menu.id}] {Fore.WHITE}{menu.dish_name}")


def show_restaurants(client: WhatToEatClient) -> None:
    restaurants = client.home.state.restaurants
    if not restaurants:
        print(f"{Fore.YELLOW}No restaurants yet.")
        return
    for restaurant in restaurants:
        print(f"  {Fore.YELLOW}[{restaurant.id}] {Fore.WHITE}{restaurant.name}")


def show_history(client: WhatToEatClient) -> None:
    state = client.home.state
    if not state.history_records:
        print(f"{Fore.YELLOW}Nothing decided yet.")
        return
    print(f"{Fore.CYAN}{Style.BRIGHT}Past decisions ({state.history_total})")
    for record in state.history_records:
        label = record.menu.label if record.menu else f"menu #{record.menu_id}"
        print(f"  {Fore.WHITE}{record.decided_at:<25} {Fore.GREEN}{label}")


def run_decide(client: WhatToEatClient) -> bool:
    """Run one decide with the spinning label rendered on a single line."""
    def render(state) -> None:
        if state.is_deciding:
            sys.stdout.write(f"\r{Fore.MAGENTA}🎰 {state.slot_display_text:<50}")
            sys.stdout.flush()

    remove = client.home.add_listener(render)
    try:
        future = client.home.decide()
        if future is None:
            return _report(client.home.state.error)
        future.result()
    finally:
        remove()
    print()

    state = client.home.state
    if not _report(state.error):
        return False
    print(f"\n{Fore.GREEN}{Style.BRIGHT}🍽  {state.decision_result}")
    if state.decision_message:
        print(f"{Fore.WHITE}{state.decision_message}")
    return True


def add_menu(client: WhatToEatClient, restaurant: str, dish: str) -> bool:
    _wait(client.home.add_menu(restaurant, dish))
    state = client.home.state
    if not _report(state.error):
        return False
    print(f"{Fore.GREEN}Added {dish} at {restaurant}!")
    client.home.clear_add_menu_success()
    return True


def delete_menu(client: WhatToEatClient, menu_id: int) -> bool:
    _wait(client.home.delete_menu(menu_id))
    if not _report(client.home.state.error):
        return False
    print(f"{Fore.GREEN}Menu {menu_id} deleted.")
    return True


def login(client: WhatToEatClient, username: str, register: bool = False) -> bool:
    password = getpass.getpass('Password: ')
    if register:
        future = client.session.register(username, password)
    else:
        future = client.session.login(username, password)
    _wait(future)
    if not _report(client.session.state.error):
        return False
    client.session.clear_success()
    print(f"{Fore.GREEN}{describe_session(client)}")
    return True


def save_server(client: WhatToEatClient, address: Optional[str]) -> bool:
    if address is None:
        client.settings.reset_to_default()
        future = client.settings.save_settings()
    else:
        future = client.settings.save_server_address(address)
    if future is not None:
        print(f"{Fore.CYAN}Checking {client.settings.state.server_host.strip()} ...")
    _wait(future)
    if not _report(client.settings.state.error):
        return False
    client.settings.clear_save_success()
    print(f"{Fore.GREEN}Server address saved: {client.store.get_server_host()}")
    return True


# ---------------------------------------------------------------------------
# Interactive mode
# ---------------------------------------------------------------------------

def interactive_mode(client: WhatToEatClient) -> None:
    """Run the menu loop until the user quits."""
    if not client.start():
        print(f"{Fore.YELLOW}Could not sign in as a guest. "
              f"Check the server address (option s) or log in (option 7).")
    else:
        _wait(client.home.load_data())

    while True:
        print(f"\n{Fore.CYAN}{Style.BRIGHT}WhatToEat")
        print(f"{Fore.WHITE}{describe_session(client)} @ {client.store.get_server_host()}")
        print(f"{Fore.WHITE}{'='*40}")
        print(f"{Fore.YELLOW}1. {Fore.WHITE}Decide what to eat")
        print(f"{Fore.YELLOW}2. {Fore.WHITE}List menus")
        print(f"{Fore.YELLOW}3. {Fore.WHITE}Add a menu")
        print(f"{Fore.YELLOW}4. {Fore.WHITE}Delete a menu")
        print(f"{Fore.YELLOW}5. {Fore.WHITE}Show history")
        print(f"{Fore.YELLOW}6. {Fore.WHITE}List restaurants")
        print(f"{Fore.YELLOW}7. {Fore.WHITE}Log in")
        print(f"{Fore.YELLOW}8. {Fore.WHITE}Register")
        print(f"{Fore.YELLOW}9. {Fore.WHITE}Log out")
        print(f"{Fore.YELLOW}s. {Fore.WHITE}Server address")
        print(f"{Fore.YELLOW}q. {Fore.WHITE}Quit")
        print(f"{Fore.WHITE}{'='*40}")

        choice = input(f"\n{Fore.GREEN}Enter your choice: {Fore.WHITE}").strip().lower()
        client.home.clear_error()
        client.session.clear_error()
        client.settings.clear_error()

        if choice == 'q':
            print(f"\n{Fore.CYAN}Enjoy your meal! 🍜")
            break
        elif choice == '1':
            run_decide(client)
            client.home.dismiss_result()
        elif choice == '2':
            show_menus(client)
        elif choice == '3':
            restaurant = input(f"{Fore.GREEN}Restaurant: {Fore.WHITE}")
            dish = input(f"{Fore.GREEN}Dish: {Fore.WHITE}")
            add_menu(client, restaurant, dish)
        elif choice == '4':
            show_menus(client)
            raw = input(f"{Fore.GREEN}Menu id to delete: {Fore.WHITE}").strip()
            if raw.isdigit():
                delete_menu(client, int(raw))
            else:
                print(f"{Fore.RED}Invalid menu id.")
        elif choice == '5':
            _wait(client.home.refresh_history())
            show_history(client)
        elif choice == '6':
            show_restaurants(client)
        elif choice in ('7', '8'):
            username = input(f"{Fore.GREEN}Username: {Fore.WHITE}")
            if login(client, username, register=(choice == '8')):
                _wait(client.home.load_data())
        elif choice == '9':
            client.session.logout()
            print(f"{Fore.GREEN}Logged out.")
        elif choice == 's':
            print(f"{Fore.WHITE}Current: {client.store.get_server_host()}")
            address = input(f"{Fore.GREEN}New address (empty for default): {Fore.WHITE}").strip()
            if save_server(client, address or None) and client.start():
                _wait(client.home.load_data())
        else:
            print(f"{Fore.RED}Invalid choice. Please try again.")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='WhatToEat - let the server pick your next meal',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  whattoeat                                  # Run in interactive mode
  whattoeat --decide                         # Pick something to eat and exit
  whattoeat --add-menu "Joe's" Ramen         # Add a dish
  whattoeat --menus                          # List your dishes
  whattoeat --server http://192.168.1.20:8080
        """
    )
    parser.add_argument('--config', '-c', default='config.json',
                        help='Path to config file (default: config.json)')
    parser.add_argument('--decide', '-d', action='store_true',
                        help='Decide what to eat and exit')
    parser.add_argument('--menus', action='store_true', help='List menus and exit')
    parser.add_argument('--restaurants', action='store_true', help='List restaurants and exit')
    parser.add_argument('--history', action='store_true', help='Show past decisions and exit')
    parser.add_argument('--add-menu', nargs=2, metavar=('RESTAURANT', 'DISH'),
                        help='Add a dish at a restaurant')
    parser.add_argument('--delete-menu', type=int, metavar='ID', help='Delete a menu by id')
    parser.add_argument('--login', metavar='USER', help='Log in (password is prompted)')
    parser.add_argument('--register', metavar='USER',
                        help='Create an account and log in (password is prompted)')
    parser.add_argument('--guest', action='store_true', help='Sign in as a guest')
    parser.add_argument('--logout', action='store_true', help='Forget the stored login')
    parser.add_argument('--whoami', action='store_true', help='Show the current session')
    parser.add_argument('--server', metavar='URL',
                        help='Check and save the server address')
    parser.add_argument('--reset-server', action='store_true',
                        help='Check and save the default server address')
    return parser


def run(args: argparse.Namespace, client: WhatToEatClient) -> int:
    """Execute the one-shot command in *args*; return the exit status."""
    if args.server or args.reset_server:
        return 0 if save_server(client, None if args.reset_server else args.server) else 1
    if args.logout:
        client.session.logout()
        print(f"{Fore.GREEN}Logged out.")
        return 0
    if args.login or args.register:
        return 0 if login(client, args.register or args.login, register=bool(args.register)) else 1
    if args.guest:
        _wait(client.session.guest_login())
        if not _report(client.session.state.error):
            return 1
        print(f"{Fore.GREEN}{describe_session(client)}")
        return 0
    if args.whoami:
        client.session.check()
        print(f"{Fore.WHITE}{describe_session(client)} @ {client.store.get_server_host()}")
        return 0

    if not client.start():
        print(f"{Fore.RED}Not signed in and guest login failed. "
              f"Check the server address with --server or log in with --login.")
        return 1

    if args.add_menu:
        return 0 if add_menu(client, *args.add_menu) else 1
    if args.delete_menu is not None:
        return 0 if delete_menu(client, args.delete_menu) else 1

    if args.history:
        _wait(client.home.refresh_history())
        show_history(client)
        return 0

    _wait(client.home.load_data())
    if args.menus:
        show_menus(client)
    elif args.restaurants:
        show_restaurants(client)
    elif args.decide:
        return 0 if run_decide(client) else 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    load_dotenv()
    args = build_parser().parse_args(argv)
    config = load_config(args.config)
    setup_logging(config['log_level'])

    client = WhatToEatClient(config)
    try:
        one_shot = any((
            args.decide, args.menus, args.restaurants, args.history, args.add_menu,
            args.delete_menu is not None, args.login, args.register, args.guest,
            args.logout, args.whoami, args.server, args.reset_server,
        ))
        if one_shot:
            return run(args, client)
        print(f"{Fore.CYAN}{Style.BRIGHT}🍜 WhatToEat{Style.RESET_ALL}\n")
        interactive_mode(client)
        return 0
    except KeyboardInterrupt:
        print(f"\n{Fore.CYAN}Bye!")
        return 130
    finally:
        client.close()


if __name__ == '__main__':
    sys.exit(main())
