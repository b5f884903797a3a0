import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402


# ====================================
# VISUALIZATION
# ====================================
def plot_topology(topology, ax=None):
    """Node layout coloured per cluster; bridge nodes starred and linked."""
    if ax is None:
        _, ax = plt.subplots(figsize=(8, 8))
    colors = plt.cm.tab10(np.linspace(0, 1, max(len(topology.clusters), 1)))
    for cluster in topology.clusters:
        xs = [n.position[0] for n in cluster.nodes]
        ys = [n.position[1] for n in cluster.nodes]
        ax.scatter(xs, ys, c=[colors[cluster.index % len(colors)]], s=60, alpha=0.7,
                   label=f"Cluster {cluster.index} ({cluster.network})")
        for node in cluster.nodes:
            ax.annotate(str(node.id), node.position, fontsize=8, xytext=(4, 4), textcoords="offset points")

    bridge = topology.bridge_cluster
    if bridge is not None:
        bx = [n.position[0] for n in bridge.nodes]
        by = [n.position[1] for n in bridge.nodes]
        ax.scatter(bx, by, s=250, marker="*", c="gold", edgecolors="black", linewidths=1.5,
                   label=f"Bridge ({bridge.network})", zorder=5)
        for i, a in enumerate(bridge.nodes):
            for b in bridge.nodes[i + 1:]:
                ax.plot([a.position[0], b.position[0]], [a.position[1], b.position[1]],
                        "k--", alpha=0.4, linewidth=1)

    ax.set_xlabel("x (m)", fontsize=12)
    ax.set_ylabel("y (m)", fontsize=12)
    ax.set_title(f"Swarm Layout: {len(topology.nodes)} nodes, {len(topology.clusters)} clusters (★ = bridge)",
                 fontsize=14, fontweight="bold")
    ax.grid(True, alpha=0.3)
    ax.legend(fontsize=9)
    return ax


def plot_flow_stats(stats, ax=None):
    """Sent vs received packets per flow."""
    if ax is None:
        _, ax = plt.subplots(figsize=(10, 6))
    ids = np.arange(len(stats))
    width = 0.35
    ax.bar(ids - width / 2, [s.tx_packets for s in stats], width, alpha=0.7, color="steelblue", label="Sent")
    ax.bar(ids + width / 2, [s.rx_packets for s in stats], width, alpha=0.7, color="green", label="Received")
    ax.set_xticks(ids)
    ax.set_xticklabels([f"{s.source}\n→ {s.destination}" for s in stats], fontsize=8)
    ax.set_ylabel("Packets", fontsize=12)
    ax.set_title("Per-Flow Delivery", fontsize=14, fontweight="bold")
    ax.legend(fontsize=10)
    ax.grid(True, alpha=0.3, axis="y")
    return ax


def save_summary_figure(topology, stats, path):
    fig, (ax_layout, ax_flows) = plt.subplots(1, 2, figsize=(16, 7))
    plot_topology(topology, ax=ax_layout)
    plot_flow_stats(stats, ax=ax_flows)
    fig.tight_layout()
    fig.savefig(path)
    plt.close(fig)
    return path
