"""Source of the Node.js harness that hosts JavaScript runs.

The harness runs as ``node [--permission] -e HARNESS_SOURCE``.  Its first
stdin line must be the ``init`` handshake carrying the session token, which
then lives only in the harness closure; later ``init`` lines are ignored.

Each run gets a fresh :mod:`vm` context over a null-prototype global.  The
``console`` and timer functions user code sees are compiled inside that
context by ``INSTALL_SOURCE``, so walking ``.constructor`` from any of them
ends at the context's own ``Function``.  The only host function they touch
is a single bridge callback held in the installer's closure; it accepts
strings and context functions and returns nothing but numeric timer ids.
Under Node's permission model (see
:func:`~livecode.runtime.sandbox.js_executor.permission_flags`) the process
additionally has no filesystem, child process or worker access.

Wire protocol (newline-delimited JSON):

Host -> harness::

    {"type": "init", "token"}
    {"type": "execute", "token", "run_id", "code"}

Harness -> host (always echoes token and run_id)::

    {"type": "start"}
    {"type": "log", "level", "args": [str, ...]}
    {"type": "done"}
    {"type": "error", "message", "stack"}
    {"type": "late_error", "message", "stack"}
"""

import json

INSTALL_SOURCE = r"""
(function install(bridge) {
  'use strict';
  const call = (op, a, b, c) => bridge(op, a, b, c);
  const serialize = (value) => {
    if (typeof value === 'string') return value;
    try {
      const text = JSON.stringify(value);
      return text === undefined ? String(value) : text;
    } catch (_) {
      try { return String(value); } catch (_) { return '[unserializable]'; }
    }
  };
  const sandboxConsole = {};
  ['log', 'info', 'warn', 'error', 'debug'].forEach((level) => {
    sandboxConsole[level] = function (...args) {
      call('log', level === 'debug' ? 'log' : level, args.map(serialize));
    };
  });
  const timer = (repeat) => function (fn, ms, ...args) {
    const tick = () => { if (typeof fn === 'function') fn(...args); };
    return call('timer', repeat, tick, Number(ms) || 0);
  };
  const clear = function (id) { call('clear', id); };
  globalThis.console = sandboxConsole;
  globalThis.setTimeout = timer(false);
  globalThis.setInterval = timer(true);
  globalThis.clearTimeout = clear;
  globalThis.clearInterval = clear;
  globalThis.queueMicrotask = function (fn) {
    call('microtask', () => { if (typeof fn === 'function') fn(); });
  };
})
"""

HARNESS_SOURCE = r"""
'use strict';
const vm = require('vm');
const readline = require('readline');

const INSTALL_SOURCE = __INSTALL_SOURCE__;
const LEVELS = new Set(['log', 'info', 'warn', 'error']);
let sessionToken = null;
let current = null;
let nextTimerId = 1;
const timers = new Map();

const send = (msg) => {
  process.stdout.write(JSON.stringify(msg) + '\n');
};

const describe = (err) => {
  let message = 'Error';
  let stack = null;
  try { message = String((err && err.message) || err); } catch (_) {}
  try { stack = err && err.stack ? String(err.stack) : null; } catch (_) {}
  return { message, stack };
};

const reportLate = (run, err) => {
  if (!run) return;
  try {
    send(Object.assign({ type: 'late_error', token: sessionToken, run_id: run.runId }, describe(err)));
  } catch (_) {}
};

const invoke = (run, fn) => {
  try {
    fn();
  } catch (err) {
    reportLate(run, err);
  }
};

const clearTimers = () => {
  timers.forEach((handle) => clearTimeout(handle));
  timers.clear();
};

const makeBridge = (run) => (op, a, b, c) => {
  try {
    if (op === 'log') {
      const level = LEVELS.has(a) ? a : 'log';
      const args = Array.from(b || [], (item) => String(item));
      send({ type: 'log', token: sessionToken, run_id: run.runId, level, args });
    } else if (op === 'timer' && typeof b === 'function') {
      const id = nextTimerId++;
      const repeat = a === true;
      const tick = () => {
        if (!repeat) timers.delete(id);
        invoke(run, b);
      };
      timers.set(id, repeat ? setInterval(tick, c) : setTimeout(tick, c));
      return id;
    } else if (op === 'clear') {
      const handle = timers.get(a);
      if (handle !== undefined) {
        clearTimeout(handle);
        timers.delete(a);
      }
    } else if (op === 'microtask' && typeof a === 'function') {
      queueMicrotask(() => invoke(run, a));
    }
  } catch (_) {}
  return undefined;
};

const execute = (msg) => {
  const run = { runId: String(msg.run_id) };
  current = run;
  clearTimers();
  const base = { token: sessionToken, run_id: run.runId };
  send(Object.assign({ type: 'start' }, base));
  try {
    const context = vm.createContext(Object.create(null), { codeGeneration: { strings: true, wasm: false } });
    vm.runInContext(INSTALL_SOURCE, context)(makeBridge(run));
    const SandboxFunction = vm.runInContext('Function', context);
    const body = new SandboxFunction(String(msg.code || '') + '\n//# sourceURL=runtime.js');
    body();
    send(Object.assign({ type: 'done' }, base));
  } catch (err) {
    send(Object.assign({ type: 'error' }, base, describe(err)));
  }
};

process.on('uncaughtException', (err) => reportLate(current, err));
process.on('unhandledRejection', (reason) => reportLate(current, reason));

const input = readline.createInterface({ input: process.stdin, crlfDelay: Infinity });
input.on('line', (line) => {
  let msg;
  try { msg = JSON.parse(line); } catch (_) { return; }
  if (!msg || typeof msg !== 'object') return;
  if (sessionToken === null) {
    if (msg.type === 'init' && typeof msg.token === 'string' && msg.token) sessionToken = msg.token;
    return;
  }
  if (msg.type !== 'execute' || msg.token !== sessionToken) return;
  execute(msg);
});
input.on('close', () => process.exit(0));
""".replace("__INSTALL_SOURCE__", json.dumps(INSTALL_SOURCE.strip()))
