"""
Voice control for the audio bridge.

Chat commands -> VoiceController -> (SessionRegistry, StreamPipeline).

- One session per guild, held by an explicitly constructed SessionRegistry
- play/stop serialized per guild; guilds run concurrently
- Remote failures become outcomes; only startup failures end the process
- Shutdown leaves every channel with a bounded per-session timeout
"""
