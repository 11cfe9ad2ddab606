#!/usr/bin/env python3

# fleet.py - PVC Fleet API session libraries
# Part of the Parallel Virtual Cluster (PVC) system
#
#    Copyright (C) 2018-2021 Joshua M. Boniface <joshua@boniface.me>
#
#    This program is free software: you can redistribute it and/or modify
#    it under the terms of the GNU General Public License as published by
#    the Free Software Foundation, version 3.
#
#    This program is distributed in the hope that it will be useful,
#    but WITHOUT ANY WARRANTY; without even the implied warranty of
#    MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
#    GNU General Public License for more details.
#
#    You should have received a copy of the GNU General Public License
#    along with this program.  If not, see <https://www.gnu.org/licenses/>.
#
###############################################################################

# The fleet API follows the MAAS 1.0 REST layout: collection operations are
# selected with an "op" query argument, e.g. POST /api/1.0/nodes/?op=acquire

import base64
import gzip
import requests
import urllib3
from urllib.parse import quote

from celery.utils.log import get_task_logger

from pvcfleet.lib.dataclasses import Node, NetworkDetails
from pvcfleet.lib.errors import CapacityError, ObjectNotFoundError, TransportError


logger = get_task_logger(__name__)


API_ROOT = "/api/1.0"


def encode_userdata(user_data):
    """
    Wrap user data in the gzip+base64 envelope expected by the start operation
    """
    if isinstance(user_data, str):
        user_data = user_data.encode("utf-8")
    return base64.b64encode(gzip.compress(user_data)).decode("ascii")


def decode_userdata(user_data):
    """
    Unwrap a gzip+base64 user data envelope
    """
    return gzip.decompress(base64.b64decode(user_data))


class FleetSession:
    def __init__(self, host, api_key, timeout=30, verify=True):
        if not verify:
            # Disable urllib3 warnings
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

        self.host = host.rstrip("/")
        self.timeout = timeout
        self.verify = verify
        self.headers = {
            "accept": "application/json",
            "authorization": f"Token {api_key}",
        }

    def _request(
        self,
        method,
        operation,
        uri,
        target=None,
        params=None,
        data=None,
        files=None,
        timeout=None,
    ):
        url = f"{self.host}{API_ROOT}{uri}"
        if target is None:
            target = uri

        requests_actions = {
            "get": requests.get,
            "post": requests.post,
            "delete": requests.delete,
        }

        logger.debug(f"{method.upper()} {url} params={params} data={data}")

        try:
            response = requests_actions[method](
                url,
                headers=self.headers,
                params=params,
                data=data,
                files=files,
                verify=self.verify,
                timeout=timeout if timeout is not None else self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"! Error: {method.upper()} request to {url} failed")
            logger.warning(f"! Details: {e}")
            raise TransportError(operation, target, message=str(e))

        if response.status_code not in [200, 201, 204]:
            try:
                message = response.json().get("error", response.text)
            except (ValueError, AttributeError):
                message = response.text
            logger.warning(f"! Error: {method.upper()} request to {url} failed")
            logger.warning(f"! HTTP Code: {response.status_code}")
            logger.warning(f"! Details: {message}")
            raise TransportError(operation, target, response.status_code, message)

        return response

    #
    # Node operations
    #
    def acquire(self, params, timeout=None):
        try:
            response = self._request(
                "post",
                "acquire",
                "/nodes/",
                target="fleet",
                params={"op": "acquire"},
                data=params,
                timeout=timeout,
            )
        except TransportError as e:
            # 409 Conflict: nothing free matches the request
            if e.status_code == 409:
                raise CapacityError(
                    f"cannot acquire node: {e.msg} (HTTP Code: 409)", params=params
                )
            raise

        node = Node.from_api(response.json())
        logger.info(f"Acquired node {node.system_id} ({node.hostname})")
        return node

    def start_node(self, system_id, user_data, series=None, timeout=None):
        data = {"user_data": encode_userdata(user_data)}
        if series:
            data["distro_series"] = series

        self._request(
            "post",
            "start",
            f"/nodes/{system_id}/",
            target=system_id,
            params={"op": "start"},
            data=data,
            timeout=timeout,
        )
        logger.info(f"Started node {system_id}")

    def release_nodes(self, system_ids, timeout=None):
        self._request(
            "post",
            "release",
            "/nodes/",
            target=",".join(system_ids),
            params={"op": "release"},
            data={"nodes": list(system_ids)},
            timeout=timeout,
        )
        logger.info(f"Released nodes {', '.join(system_ids)}")

    def list_nodes(self, system_ids=None, agent_name=None, timeout=None):
        params = {"op": "list"}
        if system_ids:
            params["id"] = list(system_ids)
        if agent_name:
            params["agent_name"] = agent_name

        response = self._request(
            "get", "list", "/nodes/", target="fleet", params=params, timeout=timeout
        )
        return [Node.from_api(obj) for obj in response.json()]

    def get_hardware_report(self, system_id, timeout=None):
        response = self._request(
            "get",
            "details",
            f"/nodes/{system_id}/",
            target=system_id,
            params={"op": "details"},
            timeout=timeout,
        )
        lshw = response.json().get("lshw") or ""
        if isinstance(lshw, str):
            lshw = lshw.encode("utf-8")
        return lshw

    #
    # Network operations
    #
    def list_networks(self, node=None, timeout=None):
        params = dict()
        if node is not None:
            params["node"] = node

        response = self._request(
            "get",
            "list networks",
            "/networks/",
            target=node if node is not None else "fleet",
            params=params,
            timeout=timeout,
        )
        return [NetworkDetails.from_api(obj) for obj in response.json()]

    def list_connected_macs(self, network, timeout=None):
        try:
            response = self._request(
                "get",
                "list connected macs",
                f"/networks/{quote(network)}/",
                target=network,
                params={"op": "list_connected_macs"},
                timeout=timeout,
            )
        except TransportError as e:
            if e.status_code == 404:
                return []
            raise

        return [obj["mac_address"] for obj in response.json()]

    #
    # File operations
    #
    def put_file(self, name, data, timeout=None):
        self._request(
            "post",
            "add file",
            "/files/",
            target=name,
            params={"op": "add"},
            data={"filename": name},
            files={"file": (name, data)},
            timeout=timeout,
        )

    def get_file(self, name, timeout=None):
        try:
            response = self._request(
                "get",
                "get file",
                "/files/",
                target=name,
                params={"op": "get", "filename": name},
                timeout=timeout,
            )
        except TransportError as e:
            if e.status_code == 404:
                raise ObjectNotFoundError(name)
            raise

        return response.content

    def list_files(self, prefix="", timeout=None):
        response = self._request(
            "get",
            "list files",
            "/files/",
            target=prefix or "fleet",
            params={"op": "list", "prefix": prefix},
            timeout=timeout,
        )
        return [obj["filename"] for obj in response.json()]

    def delete_file(self, name, timeout=None):
        try:
            self._request(
                "delete",
                "delete file",
                f"/files/{quote(name, safe='')}/",
                target=name,
                timeout=timeout,
            )
        except TransportError as e:
            # Already gone
            if e.status_code != 404:
                raise
