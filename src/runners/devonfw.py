"""devonfw IDE locations and naming shared by the runners."""

from typing import Iterable, List, Optional

IDE_SETTINGS_REPOSITORY = "https://github.com/devonfw/ide-settings.git"
IDE_DOWNLOAD_URL = "https://bit.ly/2BCkFa9"
IDE_RELEASE_URL = (
    "https://repository.sonatype.org/service/local/artifact/maven/redirect"
    "?r=central-proxy&g=com.devonfw.tools.ide&a=devonfw-ide-scripts&p=tar.gz&v={version}"
)

# Tools whose software folder differs from the tool name
IDE_TOOL_DIRECTORIES = {"mvn": "maven", "npm": "node", "ng": "node"}

# Graphical IDEs cannot run in a browser terminal
DESKTOP_TOOLS = frozenset({"vscode", "eclipse"})


def ide_download_url(version: Optional[str] = None) -> str:
    """Download URL of the IDE scripts, the latest release unless a version is given."""
    return IDE_RELEASE_URL.format(version=version) if version else IDE_DOWNLOAD_URL


def tool_directory(tool: str) -> str:
    """Folder below ``software`` the IDE installs ``tool`` into."""
    return IDE_TOOL_DIRECTORIES.get(tool, tool)


def terminal_tools(tools: Iterable[str]) -> List[str]:
    return [tool for tool in tools if tool not in DESKTOP_TOOLS]
