# lightgpt

A compact toolkit for experimenting with transformer inference in Python.
It reads GGUF model files through a memory map, keeps a key/value cache for
autoregressive decoding, offers 2-bit block quantization, speculative
decoding with a small draft predictor, and a set of reference matrix kernels
for benchmarking.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Command line

The `lightgpt` command checks a GGUF model file and answers a question:

```
lightgpt models/tinyllama-1.1b-chat-v1.0.Q4_K_M.gguf "What is the capital of France?"
```

`--mode` chooses the answering engine:

- `answer` (default) – `KnowledgeBaseInference`; the prompt defaults to `Hello`.
- `quick` – `QuickAnswerer`; a prompt is required.
- `demo` – `DemoInference`; the prompt defaults to
  `Hello, tell me about artificial intelligence.`
- `skeleton` – `SkeletonTransformer`; the prompt defaults to
  `What is the capital of France?`

```
lightgpt --mode quick models/model.gguf "Tell me a joke"
```

Without a model path (or, in `quick` mode, without a prompt) the command
prints its usage and exits with status 1. A file that cannot be opened or
does not start with a valid GGUF header also gives status 1.

## Modules

- `lightgpt.gguf` – low-level GGUF reading: `align`, `read_header`,
  `read_header_file`, `parse_kv_pairs`, `parse_tensor_infos`,
  `gguf_type_to_dtype`, along with the `GGUFHeader`, `TensorInfo`,
  `GGUFValueType` and `DType` types and the `GGUFError` exception. Metadata
  scalars are kept as the decimal text of their raw bits, strings as
  themselves; arrays are skipped.
- `lightgpt.model_loader` – `ModelLoader`, which maps a GGUF file, requires
  `general.architecture` in its metadata, and exposes the metadata, the tensor
  table and model dimensions (`architecture`, `tensor_count`, `tensor_names`,
  `vocab_size`, `max_sequence_length`, `embedding_dim`, `num_layers`,
  `num_heads`, `num_kv_heads`). `load_tensor` returns F32 tensors as numpy
  arrays. It works as a context manager; `ModelNotLoadedError` is raised when
  a tensor is asked for before loading.
- `lightgpt.kv_cache` – `KVCache`, a fixed-size key/value cache shaped
  `[batch, heads, max_seq_len, head_dim]` with `get`, `update` and `clear`.
- `lightgpt.tokenizers` – `WordTokenizer` (case-insensitive, splits on spaces
  and `?.!`) and `VocabTokenizer` (whitespace splitting over a small
  case-sensitive vocabulary), both with `encode` and `decode`.
- `lightgpt.inference` – `normalize_query`, `KnowledgeBaseInference`,
  `QuickAnswerer`, `DemoInference`, `SkeletonTransformer` and the command's
  `main`.
- `lightgpt.quantization` – `INT2Block` and `INT2Quantizer`: weights in blocks
  of 32 stored as 2-bit levels, `dequantize`, and `int2_matmul`.
- `lightgpt.speculative` – `TinyPredictor`, `SpeculativeDecoder` and
  `IncrementModel`.
- `lightgpt.kernels` – reference kernels (`baseline_matmul`, `blocked_matmul`,
  `int8_quantize`, `int4_pack`, `complex_formula`, `generate_weights`) and
  `BenchmarkResult` with `geometric_mean_speedup`.

## Examples

```python
from lightgpt.model_loader import ModelLoader

with ModelLoader("model.gguf") as model:
    print(model.architecture)
    for name in model.tensor_names:
        print(name, model.tensor_shape(name))
```

```python
import numpy as np
from lightgpt.kernels import baseline_matmul, blocked_matmul

a = np.random.default_rng(0).standard_normal(64 * 64).astype(np.float32)
b = np.random.default_rng(1).standard_normal(64 * 64).astype(np.float32)
assert np.allclose(baseline_matmul(a, b, 64, 64, 64),
                   blocked_matmul(a, b, 64, 64, 64, 32), atol=1e-4)
```

```python
from lightgpt.speculative import IncrementModel, SpeculativeDecoder, TinyPredictor
```

`SpeculativeDecoder(predictor).speculative_generate(IncrementModel(), [5], 8)`
extends the context `[5]` by at least eight tokens, keeping drafted tokens
the full model agrees with.

## What the package does not do

The package does not run a transformer forward pass over a model's weights.
There is no attention layer, and the command's answers come from small
built-in question tables or fixed text, not from the model file, which is
only checked for a valid GGUF header. `ModelLoader.load_tensor` reads F32
tensors only; other tensor types raise `GGUFError`.