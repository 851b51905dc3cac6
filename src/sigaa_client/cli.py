from __future__ import annotations

import argparse
import asyncio
import logging
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .account import Account, StudentBond
from .config import AppConfig, load_config
from .errors import SigaaError
from .institutions import INSTITUTIONS
from .logging_config import configure_logging
from .session.options import RequestOptions
from .sigaa import Sigaa


logger = logging.getLogger("sigaa_client")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="sigaa-client")
    p.add_argument(
        "--env-file",
        default=".env",
        help="Path to a dotenv file (default: .env). If missing, env vars must already be set.",
    )

    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("list-institutions", help="List the supported SIGAA institutions and their portal URLs")

    list_bonds = sub.add_parser("list-bonds", help="Log in and list the account's active and inactive bonds")
    list_bonds.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")

    fetch = sub.add_parser("fetch", help="Log in and fetch one portal page (debug)")
    fetch.add_argument("path", help="Portal path or full URL, e.g. /sigaa/portais/discente/discente.jsf")
    fetch.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")
    fetch.add_argument("--bond", default="", help="Registration number of the bond to fetch under")
    fetch.add_argument("--no-cache", action="store_true", help="Bypass the page cache")
    fetch.add_argument("--mobile", action="store_true", help="Use the mobile user agent for this request")
    fetch.add_argument("--save-html", default="", help="Write the decoded page body to this file")

    download = sub.add_parser("download", help="Log in and download a file by id and security key")
    download.add_argument("--id", required=True, dest="file_id", help="File id (idProducao)")
    download.add_argument("--key", required=True, help="File security key")
    download.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")
    download.add_argument("--bond", default="", help="Registration number of the bond to download under")
    download.add_argument("--out-dir", default="", help="Output directory (default: download.directory from config)")

    return p


async def _pick_bond(account: Account, registration: str) -> Optional[StudentBond]:
    if registration:
        return await account.get_bond(registration)
    active = await account.get_active_bonds()
    return active[0] if active else None


async def _list_bonds(cfg: AppConfig) -> None:
    async with Sigaa.from_config(cfg) as sigaa:
        account = await sigaa.login(cfg.portal.username, cfg.portal.password)
        try:
            print(f"User: {await account.get_name()}")
            for label, bonds in (
                ("Active", await account.get_active_bonds()),
                ("Inactive", await account.get_inactive_bonds()),
            ):
                print(f"{label} bonds:")
                if not bonds:
                    print("  (none)")
                for b in bonds:
                    print(f"  - {b.info.kind} {b.registration} {b.program} {b.info.status}".rstrip())
        finally:
            await account.logoff()


async def _fetch(cfg: AppConfig, *, path: str, bond: str, no_cache: bool, mobile: bool, save_html: str) -> None:
    options = RequestOptions(no_cache=no_cache, mobile=mobile)
    async with Sigaa.from_config(cfg) as sigaa:
        account = await sigaa.login(cfg.portal.username, cfg.portal.password)
        try:
            picked = await _pick_bond(account, bond)
            http = picked.http if picked is not None else account.http
            page = await http.get(path, options)
            page = await http.follow_all_redirects(page, options)

            print(f"Status:     {page.status_code}")
            print(f"URL:        {page.url}")
            print(f"View state: {page.view_state or '(none)'}")
            if save_html:
                out = Path(save_html)
                out.parent.mkdir(parents=True, exist_ok=True)
                out.write_text(page.body_decoded, encoding="utf-8")
                print(f"Saved:      {out}")
        finally:
            await account.logoff()


async def _download(cfg: AppConfig, *, file_id: str, key: str, bond: str, out_dir: str) -> None:
    dest = Path(out_dir or cfg.download.directory)
    dest.mkdir(parents=True, exist_ok=True)

    def progress(total: Optional[int], downloaded: int) -> None:
        logger.debug("Downloaded %d/%s bytes", downloaded, total if total is not None else "?")

    async with Sigaa.from_config(cfg) as sigaa:
        account = await sigaa.login(cfg.portal.username, cfg.portal.password)
        try:
            picked = await _pick_bond(account, bond)
            if picked is None:
                raise SigaaError("This account has no active bond to download under; pass --bond")
            path = await picked.file(file_id, key).download(dest, progress=progress)
            print(f"Saved: {path}")
        finally:
            await account.logoff()


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    env_path = Path(args.env_file)
    if env_path.exists():
        load_dotenv(env_path)

    # Default logging: can be overridden once config is loaded.
    configure_logging(level=os.getenv("LOG_LEVEL", "INFO"))

    if args.cmd == "list-institutions":
        for profile in INSTITUTIONS.values():
            print(f"{profile.institution.value:<8} {profile.default_url:<28} {profile.display_name}")
        return 0

    cfg = load_config(args.config)
    configure_logging(level=cfg.logging.level, file_path=cfg.logging.file_path)
    if not cfg.portal.username or not cfg.portal.password:
        raise SystemExit("Missing credentials. Set SIGAA_USERNAME and SIGAA_PASSWORD in .env (or portal.* in YAML).")

    try:
        if args.cmd == "list-bonds":
            asyncio.run(_list_bonds(cfg))
            return 0

        if args.cmd == "fetch":
            asyncio.run(
                _fetch(
                    cfg,
                    path=args.path,
                    bond=args.bond,
                    no_cache=args.no_cache,
                    mobile=args.mobile,
                    save_html=args.save_html,
                )
            )
            return 0

        if args.cmd == "download":
            asyncio.run(
                _download(cfg, file_id=args.file_id, key=args.key, bond=args.bond, out_dir=args.out_dir)
            )
            return 0
    except SigaaError as e:
        logger.error("%s failed: %s", args.cmd, e)
        return 1
    except KeyboardInterrupt:
        print("Interrupted.")
        return 130

    raise AssertionError("Unhandled command")
