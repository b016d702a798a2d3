# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# virtconn/cli/help_texts.py
from __future__ import annotations

# NOTE:
# This module is pure help/documentation text used by argparse epilog rendering.
# Keep it "copy/paste runnable" and avoid importing heavy dependencies here.

EPILOG_EXAMPLES = r"""
  virtconn list
  export ESX_PW=...
  virtconn create-esx lab-esx --server esx01.lab --username root --password-env ESX_PW --datastore ds1
  virtconn create-esx prod-vc --server vc01.lab --username administrator@vsphere.local \
      --password-env ESX_PW --host-type vcenter --esx-host /DC1/host/esx02.lab \
      --datacenter /DC1 --offload-method iscsi --iscsi-hba vmhba64 --datastore ds2
  virtconn create-hyperv hv01 --server hv01.corp --username Administrator --domain CORP --password-env HV_PW
  virtconn edit lab-esx --new-name lab-esx2 --datastore ds2   # stored password kept
  virtconn check hv01
  virtconn set-primary hv01
  virtconn set-primary local        # local KVM becomes primary again
  virtconn refresh
"""

YAML_EXAMPLE = r"""# virtconn configuration (YAML)
#
# Run:
# virtconn --config virtconn.yaml <command>
#
# Merge multiple configs (later overrides earlier):
# virtconn --config base.yaml --config site.yaml <command>
#
# Keys are argparse dests; dashes are accepted and turned into underscores.
#
# connection_dir: /var/lib/virtconn/connections   # or $VIRTCONN_CONNECTION_DIR
# vsphere_port: 443
# vsphere_insecure: true      # skip vSphere certificate verification
# winexe_bin: /usr/bin/winexe
# libvirt_local_uri: qemu:///system
# verbose: 1
# log_file: /var/log/virtconn.log
"""
