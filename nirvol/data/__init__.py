"""Package data. The build drops the volume tool binary (nircmd.exe) here."""
