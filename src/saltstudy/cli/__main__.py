# SPDX-FileCopyrightText: 2025 Knitli Inc.
# SPDX-FileContributor: Adam Poulemanos <adam@knit.li>
#
# SPDX-License-Identifier: MIT OR Apache-2.0
"""saltstudy CLI entrypoint."""

from saltstudy.cli.app import main


if __name__ == "__main__":
    main()
