"""Snapshot inventory sources for the supported management endpoints."""

import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Dict, Any, Iterator, Optional, Set

import requests
import yaml
from pyVim import connect
from pyVmomi import vim

from .exceptions import ConfigurationError, SourceUnavailableError
from .utils import NotificationManager


class SnapshotSource(ABC):
    """Abstract base class for snapshot inventory sources.

    ``list_snapshots`` returns raw snapshot mappings with the keys
    ``source_id``, ``vm_name``, ``snapshot_name``, ``snapshot_description``,
    ``size_bytes``, ``created_at`` and ``tags``. Tags belong to the VM and are
    repeated on every snapshot of that VM.
    """

    def __init__(self, source_id: str, settings: Dict[str, Any], notifier: NotificationManager):
        self.source_id = source_id
        self.settings = settings
        self.notifier = notifier

    @property
    @abstractmethod
    def source_type(self) -> str:
        """Return source type name."""
        pass

    @property
    @abstractmethod
    def endpoint(self) -> str:
        """Return a printable description of where the source reads from."""
        pass

    @abstractmethod
    def list_snapshots(self) -> List[Dict[str, Any]]:
        """List raw snapshot records.

        Raises:
            SourceUnavailableError: If the source cannot be enumerated
        """
        pass

    def close(self) -> None:
        """Release any connection held by the source."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _record(self, vm_name: Any, tags: Any, snapshot: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "vm_name": vm_name,
            "snapshot_name": snapshot.get("name", ""),
            "snapshot_description": snapshot.get("description", ""),
            "size_bytes": snapshot.get("size_bytes"),
            "created_at": snapshot.get("created_at"),
            "tags": tags,
        }


class InventoryFileSource(SnapshotSource):
    """Snapshot inventory exported to a YAML or JSON file.

    Expected layout::

        vms:
          - name: web01
            tags: [PersistantSnapshot]
            snapshots:
              - name: before-upgrade
                description: pre patch
                size_bytes: 104857600
                created_at: 2024-05-01T08:30:00Z
    """

    def __init__(self, source_id: str, settings: Dict[str, Any], notifier: NotificationManager):
        super().__init__(source_id, settings, notifier)
        if not settings.get("path"):
            raise ConfigurationError(f"Inventory source '{source_id}' has no 'path' setting")
        self.path = Path(settings["path"]).expanduser()

    @property
    def source_type(self) -> str:
        return "inventory"

    @property
    def endpoint(self) -> str:
        return str(self.path)

    def list_snapshots(self) -> List[Dict[str, Any]]:
        """List snapshots recorded in the inventory file."""
        path = self.path
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise SourceUnavailableError(self.source_id, f"cannot read {path}: {e}")
        except yaml.YAMLError as e:
            raise SourceUnavailableError(self.source_id, f"cannot parse {path}: {e}")

        if not isinstance(data, dict) or not isinstance(data.get("vms") or [], list):
            raise SourceUnavailableError(
                self.source_id, f"{path} must contain a 'vms' list"
            )

        records = []
        for vm in data.get("vms") or []:
            if not isinstance(vm, dict):
                self.notifier.warning(f"Ignoring invalid VM entry in {path}: {vm!r}")
                continue
            snapshots = vm.get("snapshots") or []
            if not isinstance(snapshots, list):
                self.notifier.warning(f"Ignoring snapshots of VM {vm.get('name')!r} in {path}: "
                                      f"expected a list, got {snapshots!r}")
                continue
            # tags are passed through as read and validated per record
            for snapshot in snapshots:
                if not isinstance(snapshot, dict):
                    snapshot = {}
                records.append(self._record(vm.get("name"), vm.get("tags"), snapshot))

        self.notifier.debug(f"Read {len(records)} snapshots from {path}")
        return records


class VSphereSource(SnapshotSource):
    """vCenter Server source using pyVmomi for inventory and the REST API for tags."""

    DEFAULT_PASSWORD_ENV = "SNAPAUDIT_VSPHERE_PASSWORD"

    def __init__(self, source_id: str, settings: Dict[str, Any], notifier: NotificationManager):
        super().__init__(source_id, settings, notifier)
        self.host = settings.get("host")
        if not self.host:
            raise ConfigurationError(f"vSphere source '{source_id}' has no 'host' setting")
        self.port = int(settings.get("port", 443))
        self.username = settings.get("username")
        self.password_env = settings.get("password_env", self.DEFAULT_PASSWORD_ENV)
        self.verify_ssl = bool(settings.get("verify_ssl", True))
        self.timeout = settings.get("timeout", 60)
        self.service_instance = None

    @property
    def source_type(self) -> str:
        return "vsphere"

    @property
    def endpoint(self) -> str:
        return f"{self.host}:{self.port}"

    def _get_password(self) -> str:
        """Get the endpoint password from the configured environment variable."""
        password = os.environ.get(self.password_env)
        if not password:
            raise SourceUnavailableError(
                self.source_id,
                f"password not provided; set environment variable {self.password_env}",
            )
        return password

    def open(self) -> None:
        """Connect to vCenter Server."""
        if self.service_instance is not None:
            return
        if not self.username:
            raise SourceUnavailableError(self.source_id, "no username configured")

        self.notifier.info(f"Connecting to vCenter: {self.endpoint}")
        try:
            self.service_instance = connect.SmartConnect(
                host=self.host,
                port=self.port,
                user=self.username,
                pwd=self._get_password(),
                disableSslCertValidation=not self.verify_ssl,
            )
        except SourceUnavailableError:
            raise
        except Exception as e:
            raise SourceUnavailableError(self.source_id, f"failed to connect: {e}")

    def close(self) -> None:
        """Disconnect from vCenter Server."""
        if self.service_instance is not None:
            try:
                connect.Disconnect(self.service_instance)
            except Exception as e:
                self.notifier.debug(f"Disconnect from {self.endpoint} failed: {e}")
            self.service_instance = None

    def list_snapshots(self) -> List[Dict[str, Any]]:
        """List snapshots of every VM in the vCenter inventory."""
        self.open()
        try:
            vms = [vm for vm in self._get_all_vms() if vm.snapshot is not None]
            tags_by_vm = self._lookup_tags([vm._moId for vm in vms])

            records = []
            for vm in vms:
                file_sizes = self._file_sizes(vm)
                tags = tags_by_vm.get(vm._moId, set())
                for node in self._walk(vm.snapshot.rootSnapshotList):
                    records.append(self._record(vm.name, set(tags), {
                        "name": node.name,
                        "description": node.description,
                        "size_bytes": self._snapshot_size(vm, node.snapshot, file_sizes),
                        "created_at": node.createTime,
                    }))
        except SourceUnavailableError:
            raise
        except Exception as e:
            raise SourceUnavailableError(self.source_id, f"inventory query failed: {e}")

        self.notifier.debug(f"Found {len(records)} snapshots on {self.endpoint}")
        return records

    def _get_all_vms(self) -> List[vim.VirtualMachine]:
        """Get all VMs in the inventory."""
        content = self.service_instance.RetrieveContent()
        container_view = content.viewManager.CreateContainerView(
            content.rootFolder, [vim.VirtualMachine], True
        )
        try:
            return list(container_view.view)
        finally:
            container_view.Destroy()

    def _walk(self, nodes) -> Iterator[Any]:
        """Walk a snapshot tree depth-first, parents before children."""
        for node in nodes or []:
            yield node
            yield from self._walk(node.childSnapshotList)

    def _file_sizes(self, vm: vim.VirtualMachine) -> Dict[int, int]:
        layout = vm.layoutEx
        if layout is None:
            return {}
        return {f.key: f.size or 0 for f in layout.file or []}

    def _snapshot_size(self, vm: vim.VirtualMachine, snapshot_ref, file_sizes: Dict[int, int]) -> int:
        """Sum the state, memory and delta disk files that belong to one snapshot."""
        layout = vm.layoutEx
        if layout is None:
            return 0

        for snapshot_layout in layout.snapshot or []:
            if snapshot_layout.key._moId != snapshot_ref._moId:
                continue
            keys = {snapshot_layout.dataKey}
            memory_key = getattr(snapshot_layout, "memoryKey", None)
            if memory_key is not None and memory_key >= 0:
                keys.add(memory_key)
            for disk in snapshot_layout.disk or []:
                if disk.chain:
                    keys.update(disk.chain[-1].fileKey)
            return sum(file_sizes.get(key, 0) for key in keys)

        return 0

    def _lookup_tags(self, vm_ids: List[str]) -> Dict[str, Set[str]]:
        """Resolve attached tag names per VM through the vSphere Automation API.

        Protection depends on tags, so a failed lookup fails the whole source.
        """
        if not vm_ids:
            return {}

        base_url = f"https://{self.host}:{self.port}/api"
        session = requests.Session()
        session.verify = self.verify_ssl
        try:
            response = session.post(
                f"{base_url}/session",
                auth=(self.username, self._get_password()),
                timeout=self.timeout,
            )
            response.raise_for_status()
            session.headers["vmware-api-session-id"] = response.json()

            response = session.post(
                f"{base_url}/cis/tagging/tag-association",
                params={"action": "list-attached-tags-on-objects"},
                json={"object_ids": [{"type": "VirtualMachine", "id": vm_id} for vm_id in vm_ids]},
                timeout=self.timeout,
            )
            response.raise_for_status()

            tag_names: Dict[str, str] = {}
            tags_by_vm: Dict[str, Set[str]] = {}
            for entry in response.json():
                names = set()
                for tag_id in entry.get("tag_ids", []):
                    if tag_id not in tag_names:
                        tag_response = session.get(
                            f"{base_url}/cis/tagging/tag/{tag_id}", timeout=self.timeout
                        )
                        tag_response.raise_for_status()
                        tag_names[tag_id] = tag_response.json()["name"]
                    names.add(tag_names[tag_id])
                tags_by_vm[entry["object_id"]["id"]] = names
            return tags_by_vm

        except (requests.RequestException, KeyError, ValueError) as e:
            raise SourceUnavailableError(self.source_id, f"tag lookup failed: {e}")
        finally:
            if "vmware-api-session-id" in session.headers:
                try:
                    session.delete(f"{base_url}/session", timeout=self.timeout)
                except requests.RequestException as e:
                    self.notifier.debug(f"Failed to end API session on {self.endpoint}: {e}")
            session.close()


SOURCE_TYPES = {
    "vsphere": VSphereSource,
    "inventory": InventoryFileSource,
}


def build_sources(config, notifier: Optional[NotificationManager] = None) -> List[SnapshotSource]:
    """Create a source for every configured entry, in configuration order.

    Raises:
        ConfigurationError: For missing ids, duplicate ids or unknown types
    """
    notifier = notifier or NotificationManager(config)
    sources = []
    seen = set()

    for index, settings in enumerate(config.sources):
        if not isinstance(settings, dict):
            raise ConfigurationError(f"Source entry #{index + 1} must be a mapping")

        source_id = settings.get("id")
        if not source_id:
            raise ConfigurationError(f"Source entry #{index + 1} has no 'id'")
        source_id = str(source_id)
        if source_id in seen:
            raise ConfigurationError(f"Duplicate source id: {source_id}")
        seen.add(source_id)

        source_type = settings.get("type", "vsphere")
        source_class = SOURCE_TYPES.get(source_type)
        if source_class is None:
            raise ConfigurationError(
                f"Unknown source type '{source_type}' for source '{source_id}'",
                f"Supported types: {', '.join(sorted(SOURCE_TYPES))}",
            )

        sources.append(source_class(source_id, settings, notifier))

    return sources
