import matplotlib.pyplot as plt
import numpy as np
from sklearn.datasets import make_moons
from tqdm import tqdm

from blobnet import ModelHelper, Workspace
from blobnet.optimizers import build_sgd

# --- Data Loading ---
X, y = make_moons(n_samples=200, noise=0.2, random_state=42)

ws = Workspace(seed=42)
ws.feed_blob("data", X.astype(np.float32))
ws.feed_blob("label", y.astype(np.int32))

# --- Model ---
m = ModelHelper("moons")
m.XavierFill("fc1_w", shape=[24, 2])
m.ConstantFill("fc1_b", shape=[24])
m.XavierFill("fc2_w", shape=[2, 24])
m.ConstantFill("fc2_b", shape=[2])

hidden = m.Relu(m.FC(["data", "fc1_w", "fc1_b"], "fc1"), "hidden")
logits = m.FC([hidden, "fc2_w", "fc2_b"], "fc2")
m.SoftmaxWithLoss([logits, "label"], ["softmax", "loss"])

m.AddGradientOperators(["loss"])
build_sgd(m, base_learning_rate=0.5)

ws.run_net_once(m.param_init_net)
ws.create_net(m.net)

# --- Training ---
losses = []
for _ in tqdm(range(500)):
    ws.run_net(m.name)
    losses.append(float(ws.fetch_blob("loss")))

accuracy = np.mean(ws.fetch_blob("softmax").argmax(axis=1) == y)
print(f"final loss: {losses[-1]:.4f} accuracy: {accuracy:.2%}")

plt.plot(losses)
plt.xlabel("step")
plt.ylabel("loss")
plt.title("two moons, FC -> Relu -> FC -> SoftmaxWithLoss")
plt.show()
